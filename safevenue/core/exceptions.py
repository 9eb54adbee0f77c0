"""
SafeVenue - Exceptions
Domain errors mapped to HTTP responses by the application's exception handlers
"""


class SafeVenueError(Exception):
    """Base class for service errors"""
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class EventNotFoundError(SafeVenueError):
    """The referenced event does not exist"""
    status_code = 404

    def __init__(self, event_id: str):
        super().__init__(f"Event not found: {event_id}")
        self.event_id = event_id


class AlertNotFoundError(SafeVenueError):
    """The referenced alert does not exist"""
    status_code = 404

    def __init__(self, alert_id: str):
        super().__init__(f"Alert not found: {alert_id}")
        self.alert_id = alert_id


class PersistenceError(SafeVenueError):
    """A computed result could not be written back to the store"""
    status_code = 503


class WeatherProviderError(SafeVenueError):
    """The weather provider could not be reached or returned bad data"""
    status_code = 502
