"""
Exchange orchestration: external token in, internal credential out.
"""

import re
from contextlib import contextmanager
from typing import Optional

from shared.logging import get_logger, redact_token, set_subject_context
from shared.metrics import MetricsCollector
from shared.tracing import add_span_event, trace_operation
from ..credentials.minter import CredentialMinter
from ..errors import ExchangeError, MissingToken, ProvisionConflict
from ..identity.resolver import IdentityResolver
from ..models import ExchangeIdentity, ExchangeResponse, ProvisionOutcome
from ..provisioning.provisioner import IdentityProvisioner, internal_subject_id
from ..verification.token_verifier import TokenVerifier

STAGE_METRIC = "exchange_stage_duration_seconds"

# "Bearer" followed by whitespace or nothing at all
BEARER_PREFIX = re.compile(r"^bearer(?:\s+|$)", re.IGNORECASE)


def normalize_token(token: Optional[str]) -> Optional[str]:
    """Strip whitespace and an optional ``Bearer`` prefix."""
    if token is None:
        return None
    token = BEARER_PREFIX.sub("", token.strip()).strip()
    return token or None


class TokenExchangeOrchestrator:
    """Runs verify -> resolve -> provision -> mint for a single request.

    Nothing is retried here. Every stage is idempotent or side-effect free,
    so callers may retry the whole exchange.
    """

    def __init__(
        self,
        verifier: TokenVerifier,
        resolver: IdentityResolver,
        provisioner: IdentityProvisioner,
        minter: CredentialMinter,
        provider_name: str,
        metrics: MetricsCollector,
    ):
        self.verifier = verifier
        self.resolver = resolver
        self.provisioner = provisioner
        self.minter = minter
        self.provider_name = provider_name
        self.metrics = metrics
        self.logger = get_logger("exchange.orchestrator")

    async def exchange(self, external_token: Optional[str]) -> ExchangeResponse:
        try:
            response = await self._exchange(external_token)
        except ExchangeError as e:
            self.metrics.increment_counter("token_exchanges_total", outcome=e.code)
            raise

        self.metrics.increment_counter("token_exchanges_total", outcome="success")
        return response

    async def _exchange(self, external_token: Optional[str]) -> ExchangeResponse:
        token = normalize_token(external_token)
        if not token:
            raise MissingToken()

        self.logger.info("Token exchange started", token=redact_token(token))

        with self._stage("verify"):
            introspection = await self.verifier.verify(token)
        subject = introspection.subject
        set_subject_context(subject)

        with self._stage("resolve", subject=subject):
            identity = await self.resolver.resolve(subject, token)

        internal_id = internal_subject_id(self.provider_name, subject)

        with self._stage("provision", internal_id=internal_id):
            try:
                outcome = await self.provisioner.provision(internal_id, identity)
            except ProvisionConflict:
                outcome = ProvisionOutcome.CONFLICT
                add_span_event("provision_conflict", internal_id=internal_id)
        self.metrics.increment_counter("provisioning_total", outcome=outcome.value)

        with self._stage("mint", internal_id=internal_id):
            credential = await self.minter.mint(internal_id, self.minter.build_claims(identity))

        self.logger.info(
            "Token exchanged",
            internal_id=internal_id,
            provisioning=outcome.value
        )
        self.metrics.record_business_event("token_exchanged")

        return ExchangeResponse(
            credential=credential,
            identity=ExchangeIdentity(
                internal_id=internal_id,
                email=identity.email,
                display_name=identity.display_name,
                external_subject=subject,
            ),
        )

    @contextmanager
    def _stage(self, stage: str, **attributes):
        """Time a pipeline stage and wrap it in a span."""
        with self.metrics.time_operation(STAGE_METRIC, stage=stage):
            with trace_operation(f"exchange.{stage}", **attributes):
                yield
