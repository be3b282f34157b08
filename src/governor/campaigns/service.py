"""
Campaign settings service.
"""

from uuid import UUID

from governor.campaigns.models import CampaignConfig
from governor.campaigns.repository import CampaignConfigRepositoryProtocol
from governor.campaigns.schemas import CampaignConfigUpdate
from governor.shared.exceptions import ValidationError
from governor.shared.logging import get_logger

logger = get_logger(__name__)


class CampaignSettingsService:
    """Reads and edits the account's campaign configuration."""

    def __init__(self, configs: CampaignConfigRepositoryProtocol) -> None:
        self._configs = configs

    async def get_settings(self, account_id: UUID) -> CampaignConfig:
        return await self._configs.load(account_id)

    async def save_settings(self, account_id: UUID, update: CampaignConfigUpdate) -> CampaignConfig:
        """Apply a partial update.

        Raises:
            ValidationError: If the merged calling window is empty.
        """
        config = await self._configs.load(account_id)
        changes = update.changes()

        start = changes.get("window_start", config.window_start)
        end = changes.get("window_end", config.window_end)
        if start == end:
            raise ValidationError(
                "Calling window start and end must differ.",
                details={"window_start": start.isoformat(), "window_end": end.isoformat()},
            )

        config = await self._configs.save(config, changes)
        logger.info(
            "Campaign settings saved",
            extra={"account_id": str(account_id), "fields": sorted(changes)},
        )
        return config
