"""
Internal identity provisioning.

This is the only component that writes internal user records.
"""

from shared.logging import get_logger
from ..backend.base import BackendError, BackendUserExists, BackendUserNotFound, CredentialBackend
from ..errors import ProvisionConflict, ProvisionError
from ..models import ExternalIdentity, ProvisionOutcome, UserAttributes


def internal_subject_id(provider_name: str, subject: str) -> str:
    """Namespaced internal id for an external subject."""
    return f"{provider_name}:{subject}"


class IdentityProvisioner:
    """Upserts the internal user record for an external identity.

    Without a native upsert the order is update first, create on not-found.
    A create that loses a race to a concurrent request surfaces as
    ``ProvisionConflict``.
    """

    def __init__(self, backend: CredentialBackend):
        self.backend = backend
        self.logger = get_logger("exchange.provisioner")

    async def provision(self, internal_id: str, identity: ExternalIdentity) -> ProvisionOutcome:
        attributes = UserAttributes.from_identity(identity)

        if self.backend.supports_upsert:
            try:
                await self.backend.upsert_user(internal_id, attributes)
            except BackendError as e:
                raise self._failure(internal_id, e) from e
            return ProvisionOutcome.UPSERTED

        try:
            await self.backend.update_user(internal_id, attributes)
            return ProvisionOutcome.UPDATED
        except BackendUserNotFound:
            self.logger.info("Internal user not found, creating", internal_id=internal_id)
        except BackendError as e:
            raise self._failure(internal_id, e) from e

        try:
            await self.backend.create_user(internal_id, attributes)
        except BackendUserExists as e:
            self.logger.info("Internal user created concurrently", internal_id=internal_id)
            raise ProvisionConflict(internal_id) from e
        except BackendError as e:
            raise self._failure(internal_id, e) from e

        return ProvisionOutcome.CREATED

    def _failure(self, internal_id: str, error: BackendError) -> ProvisionError:
        self.logger.error(
            "Provisioning failed",
            internal_id=internal_id,
            operation=error.operation,
            error=str(error)
        )
        return ProvisionError(details={
            "internal_id": internal_id,
            "operation": error.operation,
            "timeout": error.timeout,
        })
