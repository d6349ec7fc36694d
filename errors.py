"""Error taxonomy shared by the stores, the identity layer and the routes."""


class CarHubError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: str = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class InvalidInputError(CarHubError):
    status_code = 400
    message = "Invalid request"


class AuthError(CarHubError):
    status_code = 401
    message = "Invalid token"


class NotFoundError(CarHubError):
    status_code = 404
    message = "Not found"


class StockError(CarHubError):
    status_code = 400
    message = "Stock insufficient"


class ServerError(CarHubError):
    pass
