class GearboxError(Exception):
    pass


class FatalError(GearboxError):
    """ Prevents the pool from ever starting. Printed with the usage help. """
    pass


class ConfigError(FatalError):
    pass


class NoWorkersFound(FatalError):
    pass


class ValidationError(GearboxError):
    """ Worker code can't be loaded or is missing its entry point. """
    pass


class ClientError(GearboxError):
    """ Raised by job-queue clients when the server can't be reached or misbehaves. """
    pass
