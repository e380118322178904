# orderbridge/errors.py


class OrderBridgeError(Exception):
    """Base class for everything this service raises on purpose."""


class ConfigurationError(OrderBridgeError):
    pass


class ValidationError(OrderBridgeError):
    """Request data is missing or unusable (bad amount, empty field)."""


class GatewayError(OrderBridgeError):
    """The payment gateway call failed or returned something unusable."""


class LedgerError(OrderBridgeError):
    """A spreadsheet read, append or update failed."""


class RemoteWriteError(LedgerError):
    pass


class SignatureMismatch(OrderBridgeError):
    pass


class TrackingNotFound(OrderBridgeError):
    def __init__(self, tracking_id: str):
        super().__init__(f"tracking id {tracking_id} not found in ledger")
        self.tracking_id = tracking_id
