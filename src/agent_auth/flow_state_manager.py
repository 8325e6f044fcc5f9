"""
Flow State Manager

Keeps per-flow authorization state (PKCE verifier, state, nonce) in the
credential store between the authorize step and the token exchange, and
tracks each flow's position in the state machine:

    INIT -> AUTHORIZE_URL_BUILT -> {EMBEDDED_AUTHN_IN_PROGRESS | AWAITING_REDIRECT}
         -> TOKEN_EXCHANGE_IN_PROGRESS -> TOKEN_EXCHANGED -> TERMINAL

FAILED can be entered from any non-terminal state.
"""

import logging

from agent_auth.credential_store.credential_store import CredentialStore
from agent_auth.crypto_utils import CryptoUtils
from agent_auth.exceptions import FlowStateNotFound, InvalidFlowTransition, TokenExchangeError
from agent_auth.models import FLOW_TRANSITIONS, FlowState, FlowStatus

logger = logging.getLogger(__name__)


class FlowStateManager:
    """
    Manager for authorization flow state.

    Flow state is keyed by the ``state`` parameter of the authorization
    request, which the provider echoes back with the authorization code.
    """

    KEY_PREFIX = "flow_state"

    def __init__(
        self,
        store: CredentialStore,
        crypto: CryptoUtils | None = None,
        ttl_seconds: int | float | None = 300,
    ):
        """
        Initialize state manager.

        Args:
            store: Credential store holding the flow state
            crypto: Crypto capability used for state and nonce generation
            ttl_seconds: Lifetime of an unfinished flow (None disables expiry)
        """
        self.store = store
        self.crypto = crypto or CryptoUtils()
        self.ttl_seconds = ttl_seconds

    def _key(self, state: str) -> str:
        return f"{self.KEY_PREFIX}:{state}"

    def generate_state(self) -> str:
        """Random, URL-safe state parameter (32 bytes of entropy)."""
        return self.crypto.base64_url_encode(self.crypto.generate_random_bytes(32))

    def generate_nonce(self) -> str:
        return self.crypto.base64_url_encode(self.crypto.generate_random_bytes(16))

    def create_flow(
        self,
        code_verifier: str,
        nonce: str | None = None,
        custom_params: dict[str, str] | None = None,
    ) -> FlowState:
        """
        Create and persist a new flow in the AUTHORIZE_URL_BUILT state.
        """
        flow_state = FlowState(
            state=self.generate_state(),
            code_verifier=code_verifier,
            nonce=nonce,
            custom_params=custom_params or {},
        )
        flow_state.status = self._checked(flow_state, FlowStatus.AUTHORIZE_URL_BUILT)
        self.save(flow_state)
        logger.debug(f"Stored flow state for state={flow_state.state}")
        return flow_state

    def save(self, flow_state: FlowState) -> None:
        self.store.set(self._key(flow_state.state), flow_state.model_dump(mode="json"))

    def retrieve_flow_state(self, state: str) -> FlowState:
        """
        Retrieve flow state for a state parameter.

        Raises:
            FlowStateNotFound: If no state is stored, it is unusable, or it expired
        """
        return self._load(state)[1]

    def claim_for_exchange(self, state: str) -> FlowState:
        """
        Move a flow that is waiting for its authorization code to
        TOKEN_EXCHANGE_IN_PROGRESS.

        The move is a compare-and-set on the stored value, so of several
        concurrent exchanges for one state only the first proceeds to the
        token endpoint.

        Raises:
            FlowStateNotFound: If the flow is unknown, expired or finished
            TokenExchangeError: If the flow is not waiting for a code or was
                claimed by another exchange
        """
        data, flow_state = self._load(state)
        if flow_state.status not in (
            FlowStatus.EMBEDDED_AUTHN_IN_PROGRESS,
            FlowStatus.AWAITING_REDIRECT,
        ):
            raise TokenExchangeError(
                f"Flow is not awaiting an authorization code (status={flow_state.status.value})",
                error="invalid_state",
            )

        flow_state.status = self._checked(flow_state, FlowStatus.TOKEN_EXCHANGE_IN_PROGRESS)
        if not self.store.compare_and_set(
            self._key(state), data, flow_state.model_dump(mode="json")
        ):
            logger.warning(f"Concurrent token exchange rejected for state={state}")
            raise TokenExchangeError(
                "Flow was claimed by a concurrent token exchange", error="invalid_state"
            )

        logger.debug(f"Flow state={state} claimed for token exchange")
        return flow_state

    def _load(self, state: str) -> tuple[dict, FlowState]:
        data = self.store.get(self._key(state))
        if not data:
            logger.warning("Flow state not found for the supplied state parameter")
            raise FlowStateNotFound(state)

        flow_state = FlowState.model_validate(data)

        if flow_state.is_expired(self.ttl_seconds):
            logger.warning(f"Flow state expired for state={state}")
            self.delete_flow_state(state)
            raise FlowStateNotFound(state)

        if flow_state.status in (FlowStatus.FAILED, FlowStatus.TERMINAL):
            logger.warning(f"Flow state for state={state} is already {flow_state.status.value}")
            raise FlowStateNotFound(state)

        return data, flow_state

    def _checked(self, flow_state: FlowState, new_status: FlowStatus) -> FlowStatus:
        if new_status not in FLOW_TRANSITIONS[flow_state.status]:
            raise InvalidFlowTransition(
                f"Invalid flow transition {flow_state.status.value} -> {new_status.value}"
            )
        return new_status

    def transition(self, state: str, new_status: FlowStatus, **updates) -> FlowState:
        """
        Move a stored flow to ``new_status`` and persist any field updates.

        Raises:
            FlowStateNotFound: If the flow is unknown
            InvalidFlowTransition: If the state machine has no such edge
        """
        flow_state = self.retrieve_flow_state(state)
        flow_state.status = self._checked(flow_state, new_status)
        for field, value in updates.items():
            setattr(flow_state, field, value)
        self.save(flow_state)
        logger.debug(f"Flow state={state} moved to {new_status.value}")
        return flow_state

    def mark_failed(self, state: str) -> None:
        """
        Move a flow to FAILED and drop it. Unknown flows are ignored.
        """
        data = self.store.get(self._key(state))
        if data:
            logger.debug(
                f"Flow state={state} moved {data.get('status')} -> {FlowStatus.FAILED.value}"
            )
        self.delete_flow_state(state)

    def complete(self, state: str) -> None:
        """Move an exchanged flow to TERMINAL and drop it from the store."""
        self.transition(state, FlowStatus.TERMINAL)
        self.delete_flow_state(state)

    def delete_flow_state(self, state: str) -> None:
        self.store.remove(self._key(state))
