class GrantKeeperException(Exception):
    pass


class ConfigurationError(GrantKeeperException):
    pass


class StoreError(GrantKeeperException):
    pass
