class PyEnergyFlowError(Exception):
    pass


class TransportError(PyEnergyFlowError):
    """Network failure or an unexpected HTTP status from a gateway or cloud endpoint"""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class DecodeError(PyEnergyFlowError):
    """Payload did not have the expected shape"""


class InvalidConfigurationParameter(PyEnergyFlowError):
    """A host, site id or client id required by the call is missing"""


class AuthenticationError(PyEnergyFlowError):
    pass


class LoginError(AuthenticationError):
    """Local gateway login failed"""


class AuthorizationError(AuthenticationError):
    """OAuth authorization or code exchange failed"""


class TokenRefreshError(AuthenticationError):
    """Refresh token grant failed or no refresh token is stored"""
