# Standard library
import random
import string

# Application modules
from txsso.exceptions import BadPGT, InvalidService, InvalidTicket
from txsso.tickets import (
    LoginTicket, TicketGrantingTicket, ServiceTicket,
    ProxyGrantingTicket, ProxyTicket)
from txsso.urls import is_valid_service_url

# External modules
from twisted.internet import defer, reactor
from twisted.python import log


class TicketFactory(object):
    """
    Mints tickets and records them in the ticket store.
    """
    charset = string.ascii_letters + string.digits + '-'

    # Set to a ProxyChainManager to enable proxy-granting tickets.
    proxy_manager = None

    def __init__(self, store, config, reactor=reactor):
        self.store = store
        self.config = config
        self.reactor = reactor
        self._random = random.SystemRandom()

    def generateId(self, prefix):
        r = list(prefix)
        size = self.config.ticket_size
        charset = self.charset
        while len(r) < size:
            r.append(self._random.choice(charset))
        return ''.join(r)

    def _lifetime(self, lifespan):
        now = self.reactor.seconds()
        return now, now + lifespan

    def _mkTicket(self, cls, lifespan, *args, **kwds):
        """
        Create and store a ticket of class `cls`, generating a fresh ID
        until one is not already taken.
        """
        issued_at, expires_at = self._lifetime(lifespan)
        while True:
            ticket = cls(
                self.generateId(cls.prefix), issued_at, expires_at,
                *args, **kwds)
            if self.store.add(ticket):
                return ticket
            log.msg("[WARN][CAS] Ticket ID collision for '%s'; retrying." % ticket.id)

    def _checkService(self, service):
        if not is_valid_service_url(service):
            raise InvalidService("The service '%s' is not a valid URL." % service)

    def issueLoginTicket(self):
        return self._mkTicket(LoginTicket, self.config.lt_lifespan)

    def issueTicketGrantingTicket(self, username, extra_attributes=None):
        return self._mkTicket(
            TicketGrantingTicket, self.config.tgt_lifespan,
            username, extra_attributes)

    def issueServiceTicket(self, service, username, tgt, primary_credentials=False):
        """
        Issue a service ticket for `service` under the TGT `tgt`.
        """
        self._checkService(service)
        with self.store.transaction():
            live = self.store.get(tgt.id, TicketGrantingTicket)
            if live is None:
                raise InvalidTicket("TGT '%s' is invalid." % tgt.id)
            if live.username != username:
                raise InvalidTicket(
                    "TGT '%s' does not belong to '%s'." % (tgt.id, username))
            return self._mkTicket(
                ServiceTicket, self.config.st_lifespan,
                service, live, primary_credentials=primary_credentials)

    def issueProxyGrantingTicket(self, pgturl, granting_ticket):
        """
        Returns a deferred that fires with a new PGT, or None if the
        callback handshake did not succeed.
        """
        if self.proxy_manager is None:
            return defer.succeed(None)
        return self.proxy_manager.establishProxyGrantingTicket(
            pgturl, granting_ticket)

    def storeProxyGrantingTicket(self, pgt_id, iou, pgturl, granting_ticket):
        """
        Record a PGT whose callback has been confirmed.  Fails if the
        session it belongs to has ended in the meantime.
        """
        issued_at, expires_at = self._lifetime(self.config.pgt_lifespan)
        pgt = ProxyGrantingTicket(
            pgt_id, issued_at, expires_at, iou, pgturl, granting_ticket)
        with self.store.transaction():
            if self.store.get(pgt.granted_by_tgt, TicketGrantingTicket) is None:
                raise InvalidTicket(
                    "TGT '%s' is no longer valid." % pgt.granted_by_tgt)
            if not self.store.add(pgt):
                raise InvalidTicket("PGT '%s' already exists." % pgt_id)
        return pgt

    def issueProxyTicket(self, service, pgt_id):
        """
        Issue a proxy ticket for `service` using the PGT `pgt_id`.
        """
        self._checkService(service)
        with self.store.transaction():
            pgt = self.store.get(pgt_id, ProxyGrantingTicket)
            if pgt is None:
                raise BadPGT("PGT '%s' is invalid." % pgt_id)
            if self.store.get(pgt.granted_by_tgt, TicketGrantingTicket) is None:
                raise BadPGT("PGT '%s' is invalid." % pgt_id)
            return self._mkTicket(ProxyTicket, self.config.pt_lifespan, service, pgt)
