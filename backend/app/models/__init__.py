from app.models.asset import Asset  # noqa: F401
from app.models.asset_history import AssetHistoryEvent  # noqa: F401
from app.models.asset_lifecycle import AssetLifecycleCycle  # noqa: F401
