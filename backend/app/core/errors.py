from typing import Iterable, Optional


class AssetLifecycleError(Exception):
    status_code = 400

    def __init__(self, message: str, *, asset_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.asset_code = asset_code

    @property
    def user_message(self) -> str:
        if self.asset_code:
            return f"[PAT {self.asset_code}] {self.message}"
        return self.message


class ValidationError(AssetLifecycleError):
    status_code = 422

    def __init__(self, message: str, *, fields: Iterable[str] = (), asset_code: Optional[str] = None):
        super().__init__(message, asset_code=asset_code)
        self.fields = list(fields)

    @classmethod
    def missing(cls, fields: Iterable[str], *, asset_code: Optional[str] = None) -> "ValidationError":
        names = list(fields)
        return cls(
            f"Campos obrigatorios nao informados: {', '.join(names)}.",
            fields=names,
            asset_code=asset_code,
        )


class InvalidDateRange(AssetLifecycleError):
    status_code = 422

    def __init__(self, message: str, *, field: str, bound: str, asset_code: Optional[str] = None):
        super().__init__(message, asset_code=asset_code)
        self.field = field
        self.bound = bound


class DuplicateAssetCode(AssetLifecycleError):
    status_code = 409

    def __init__(self, asset_code: str, existing_id: Optional[int] = None):
        super().__init__(f"PAT {asset_code} ja cadastrado.")
        self.duplicate_code = asset_code
        self.existing_id = existing_id


class AssetNotFound(AssetLifecycleError):
    status_code = 404

    def __init__(self, asset_code: Optional[str] = None, asset_id: Optional[int] = None):
        label = asset_code if asset_code else f"#{asset_id}"
        super().__init__(f"Equipamento {label} nao encontrado.")
        self.missing_code = asset_code
        self.missing_id = asset_id


class InvalidStateTransition(AssetLifecycleError):
    status_code = 409

    def __init__(self, message: str, *, current: str, target: Optional[str] = None, asset_code: Optional[str] = None):
        super().__init__(message, asset_code=asset_code)
        self.current = current
        self.target = target


class SubstituteNotEligible(AssetLifecycleError):
    status_code = 422

    NOT_FOUND = "not_found"
    SAME_ASSET = "same_asset"
    WRONG_LOCATION = "wrong_location"

    def __init__(self, message: str, *, reason: str, asset_code: Optional[str] = None):
        super().__init__(message, asset_code=asset_code)
        self.reason = reason


class StaleAssetVersion(AssetLifecycleError):
    status_code = 409

    def __init__(self, *, expected: Optional[int], current: Optional[int], asset_code: Optional[str] = None):
        super().__init__(
            "Equipamento foi alterado por outra operacao. Recarregue os dados e tente novamente.",
            asset_code=asset_code,
        )
        self.expected = expected
        self.current = current


class StoreFailure(AssetLifecycleError):
    status_code = 500
