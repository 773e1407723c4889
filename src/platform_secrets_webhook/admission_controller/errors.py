class AdmissionControllerError(Exception):
    """Base admission controller error"""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ResourceMismatchError(AdmissionControllerError):
    """A request does not target the expected API resource"""

    def __init__(self, message: str):
        super().__init__(status_code=400, message=message)


class SubresourceMismatchError(AdmissionControllerError):
    def __init__(self, message: str):
        super().__init__(status_code=400, message=message)


class DecodeError(AdmissionControllerError):
    """A raw object can't be decoded into the expected structure"""

    def __init__(self, message: str):
        super().__init__(status_code=400, message=message)


class ConfigurationError(AdmissionControllerError):
    """Webhook is missing a setting required by the requested strategy"""

    def __init__(self, message: str):
        super().__init__(status_code=500, message=message)


class MalformedPatchError(AdmissionControllerError):
    def __init__(self, message: str):
        super().__init__(status_code=500, message=message)
