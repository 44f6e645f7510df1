
# External modules
from zope.interface import Interface, Attribute


class ICASUser(Interface):

    username = Attribute('String username')
    attribs = Attribute('Mapping of attribute name to value.')


class IAuthenticator(Interface):
    """
    Checks primary credentials against an identity store.

    `credentials` is a mapping with keys `username`, `password`, `service`
    and `request`.
    """

    def find_user(credentials):
        """
        Return (or return a deferred that fires with) an ICASUser for the
        credentials, or None if there is no such user.
        """

    def validate(credentials):
        """
        Return (or return a deferred that fires with) True if the
        credentials are valid.  Raises
        txsso.exceptions.AuthenticationError if the check itself failed.
        """

    def extra_attributes_to_extract():
        """
        Return the names of the user attributes copied into a new TGT.
        """


class ITicketStore(Interface):
    """
    Keyed storage for every kind of ticket.
    """

    reactor = Attribute('Provides IReactorTime; the source of "now".')

    def add(ticket):
        """
        Store a new ticket.  Returns False (and stores nothing) if a
        ticket with the same ID exists.
        """

    def get(ticket_id, kind=None, include_expired=False):
        """
        Return the ticket or None.  If `kind` is given, tickets of other
        classes are treated as absent.
        """

    def consume(ticket_id, kinds, check=None):
        """
        Atomically mark a single-use ticket consumed and return it.

        Raises txsso.exceptions.InvalidTicket if the ticket is absent, not
        one of `kinds`, expired, or already consumed.  `check` is called
        with the ticket before it is marked; if it raises, the ticket is
        left unconsumed.
        """

    def delete(ticket_id):
        """
        Remove a ticket.  Returns the removed ticket or None.
        """

    def find(predicate):
        """
        Return the live tickets for which `predicate(ticket)` is true.
        """

    def transaction():
        """
        A context manager.  Operations inside it are isolated from other
        users of the store and are rolled back if the block raises.
        """

    def reap_expired():
        """
        Remove tickets whose lifetime has passed.
        """

    def register_ticket_expiration_callback(callback):
        """
        Register a function to be called when a ticket is expired.
        The function should take 2 arguments, (ticket, explicit).
        `explicit` is a boolean that indicates whether the ticket
        was explicitly expired (e.g. /logout, ST/PT validation) or
        implicitly expired (e.g. timeout or parent ticket expired).
        """
