"""Common error handling for all services"""

class ServiceError(Exception):
    """Base exception for all service errors"""
    pass

class DatabaseError(ServiceError):
    """Base exception for database-related errors"""
    pass

class ConfigError(ServiceError):
    """Base exception for configuration errors"""
    pass

class RunnerError(ServiceError):
    """Base exception for service runner errors"""
    pass

class TimerError(ServiceError):
    """Base exception for countdown timer errors"""
    pass
