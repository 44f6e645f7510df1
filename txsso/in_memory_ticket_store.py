# Standard library
from contextlib import contextmanager
import threading

# Application modules
from txsso.exceptions import InvalidTicket
from txsso.interface import ITicketStore
from txsso.tickets import (
    ProxyGrantingTicket, ProxyTicket)

# External modules
from twisted.internet import reactor
from twisted.python import log
from zope.interface import implementer


@implementer(ITicketStore)
class InMemoryTicketStore(object):
    """
    A ticket store that exists entirely in system memory.

    Tickets are kept by ID and refer to each other by ID.  A single
    re-entrant lock guards the table, so a check-and-consume or a
    transaction is never interleaved with another writer.  Any tickets in
    the store when the process stops are lost.
    """

    reap_interval = 60

    def __init__(self, reactor=reactor, _debug=False):
        self.reactor = reactor
        self._tickets = {}
        self._lock = threading.RLock()
        self._debug = _debug
        self._expire_callback = (lambda ticket, explicit: None)
        self._reaper = None

    def debug(self, msg):
        if self._debug:
            log.msg(msg)

    def _now(self):
        return self.reactor.seconds()

    def add(self, ticket):
        with self._lock:
            if ticket.id in self._tickets:
                return False
            self._tickets[ticket.id] = ticket
        self.debug("Added ticket '%s'." % ticket.id)
        return True

    def get(self, ticket_id, kind=None, include_expired=False):
        with self._lock:
            ticket = self._tickets.get(ticket_id)
        if ticket is None:
            return None
        if kind is not None and not isinstance(ticket, kind):
            return None
        if not include_expired and ticket.is_expired(self._now()):
            return None
        return ticket

    def consume(self, ticket_id, kinds, check=None):
        with self._lock:
            ticket = self._tickets.get(ticket_id)
            if ticket is None or not isinstance(ticket, kinds):
                raise InvalidTicket("Ticket '%s' not recognized." % ticket_id)
            if ticket.consumed:
                raise InvalidTicket(
                    "Ticket '%s' has already been used up." % ticket_id)
            if ticket.is_expired(self._now()):
                raise InvalidTicket("Ticket '%s' has expired." % ticket_id)
            if check is not None:
                check(ticket)
            ticket.consumed = True
        self.debug("Consumed ticket '%s'." % ticket_id)
        self._expire_callback(ticket, True)
        return ticket

    def delete(self, ticket_id):
        with self._lock:
            ticket = self._tickets.pop(ticket_id, None)
        if ticket is not None:
            self.debug("Deleted ticket '%s'." % ticket_id)
        return ticket

    def find(self, predicate):
        now = self._now()
        with self._lock:
            tickets = list(self._tickets.values())
        return [t for t in tickets if not t.is_expired(now) and predicate(t)]

    @contextmanager
    def transaction(self):
        with self._lock:
            snapshot = dict(self._tickets)
            consumed = dict((k, t.consumed) for k, t in snapshot.items())
            try:
                yield self
            except Exception:
                self._tickets = snapshot
                for ticket_id, flag in consumed.items():
                    snapshot[ticket_id].consumed = flag
                self.debug("Rolled back transaction.")
                raise

    def _ancestors(self, ticket):
        """
        IDs of the tickets `ticket` was derived from, short of the TGT.
        """
        seen = set()
        parent_id = ticket.parent_id()
        while parent_id is not None and parent_id not in seen:
            seen.add(parent_id)
            parent = self._tickets.get(parent_id)
            if parent is None:
                break
            parent_id = parent.parent_id()
        return seen

    def reap_expired(self):
        """
        Remove expired tickets.

        A PGT is removed along with its TGT, and a PT along with its PGT.
        Tickets that a surviving PGT or PT was derived from are kept so its
        proxy chain can still be walked.
        """
        now = self._now()
        with self._lock:
            tickets = self._tickets
            dead = set(k for k, t in tickets.items() if t.is_expired(now))
            changed = True
            while changed:
                changed = False
                for ticket in tickets.values():
                    if ticket.id in dead:
                        continue
                    if isinstance(ticket, ProxyGrantingTicket):
                        parent = ticket.granted_by_tgt
                    elif isinstance(ticket, ProxyTicket):
                        parent = ticket.granted_by_pgt
                    else:
                        continue
                    if parent in dead or parent not in tickets:
                        dead.add(ticket.id)
                        changed = True
            pinned = set()
            for ticket in tickets.values():
                if ticket.id in dead:
                    continue
                if isinstance(ticket, (ProxyGrantingTicket, ProxyTicket)):
                    pinned.update(self._ancestors(ticket))
            removed = []
            for ticket_id in dead - pinned:
                removed.append(tickets.pop(ticket_id))
        for ticket in removed:
            self.debug("Expired ticket '%s'." % ticket.id)
            self._expire_callback(ticket, False)
        return removed

    def start_reaping(self, interval=None):
        if interval is not None:
            self.reap_interval = interval
        self._reaper = self.reactor.callLater(self.reap_interval, self._reap)

    def _reap(self):
        try:
            self.reap_expired()
        finally:
            self._reaper = self.reactor.callLater(self.reap_interval, self._reap)

    def stop_reaping(self):
        if self._reaper is not None and self._reaper.active():
            self._reaper.cancel()
        self._reaper = None

    def register_ticket_expiration_callback(self, callback):
        """
        Register a function to be called when a ticket is expired.
        The function should take 2 arguments, (ticket, explicit).
        `ticket` is the ticket object and `explicit` is a boolean that
        indicates whether the ticket was explicitly expired (e.g. /logout,
        ST/PT validation) or implicitly expired (e.g. timeout or parent
        ticket expired).
        """
        self._expire_callback = callback
