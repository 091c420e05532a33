class ParkingError(Exception):
    """Base class for errors raised by the parking engine."""


class ValidationError(ParkingError):
    pass


class InvalidExitTime(ValidationError):
    pass


class InvalidClass(ValidationError):
    pass


class CapacityExceeded(ParkingError):
    pass


class NotFound(ParkingError):
    pass


class StoreError(ParkingError):
    pass


class PublishError(ParkingError):
    pass
