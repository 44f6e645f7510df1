

class CASError(Exception):
    """
    Base class for errors that map onto a CAS protocol error code.
    """
    code = 'INTERNAL_ERROR'

    def __init__(self, msg=None):
        if msg is None:
            msg = self.__class__.__doc__.strip()
        Exception.__init__(self, msg)

    @property
    def message(self):
        return str(self)

class InvalidRequest(CASError):
    """
    Not all of the required request parameters were present.
    """
    code = 'INVALID_REQUEST'

class InvalidTicket(CASError):
    """
    The ticket provided was not valid.
    """
    code = 'INVALID_TICKET'

class InvalidTicketSpec(InvalidTicket):
    """
    The ticket provided is not the kind of ticket this endpoint accepts.
    """
    code = 'INVALID_TICKET_SPEC'

class InvalidService(CASError):
    """
    The service provided does not match the ticket or is not a valid URL.
    """
    code = 'INVALID_SERVICE'

class BadPGT(InvalidTicket):
    """
    The proxy-granting ticket provided was not valid.
    """
    code = 'BAD_PGT'

class InternalError(CASError):
    """
    An internal error occurred during ticket validation.
    """
    code = 'INTERNAL_ERROR'

#=======================================================================
# Errors that never reach a CAS response document.
#=======================================================================

class InvalidProxyCallback(Exception):
    pass

class NotHTTPSError(Exception):
    pass

class AuthenticationError(Exception):
    pass

class BadRequestError(Exception):
    pass

class ConfigurationError(Exception):
    pass

class ViewNotImplementedError(Exception):
    pass


def response_status_from_error(err):
    """
    Map a CAS error (or its code) to an HTTP status.
    """
    code = getattr(err, 'code', err)
    code = str(code)
    if code.startswith('INVALID_') or code == 'BAD_PGT':
        return 422
    return 500
