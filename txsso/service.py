
# Standard library.
import sys
# Application modules
from txsso.authenticator import CredAuthenticator
from txsso.in_memory_ticket_store import InMemoryTicketStore
from txsso.realm import build_realm
from txsso.server import ServerApp
# External modules
from twisted.application.service import Service
from twisted.internet.endpoints import serverFromString
from twisted.web.server import Site


class CASService(Service):
    """
    Service for CAS server
    """
    reactor = None
    _listeningPort = None

    def __init__(
                self,
                config,
                checkers,
                realm=None,
                ticket_store=None,
                http_client=None,
                page_views=None):
        if self.reactor is None:
            from twisted.internet import reactor
            self.reactor = reactor
        self.config = config
        self.endpoint_s = config.endpoint
        for key, value in config.dump():
            sys.stderr.write("[CONFIG] %s: %s\n" % (key, value))
        # Ticket store.
        if ticket_store is None:
            ticket_store = InMemoryTicketStore(reactor=self.reactor)
        self.ticket_store = ticket_store
        sys.stderr.write("[CONFIG] Ticket store: %s\n" % ticket_store.__class__.__name__)
        # Credential checkers.
        assert len(checkers) > 0, "No Credential Checkers were configured."
        for checker in checkers:
            sys.stderr.write("[CONFIG] Credential Checker: %s\n" % checker.__class__.__name__)
        # Realm.
        if realm is None:
            realm = build_realm(config.realm)
        sys.stderr.write("[CONFIG] User Realm: %s\n" % realm.__class__.__name__)
        authenticator = CredAuthenticator(
            checkers, realm, extra_attributes=config.extra_attributes)
        # Validate PGT URL?
        if config.validate_pgturl:
            sys.stderr.write("[CONFIG] pgtUrls will be validated.\n")
        else:
            sys.stderr.write("[CONFIG] pgtUrls will *NOT* be validated.\n")
        # Create the application.
        self.app = ServerApp(
                    config,
                    ticket_store,
                    authenticator,
                    http_client=http_client,
                    page_views=page_views)
        root = self.app.app.resource()
        self.site = Site(root)

    def startService(self):
        Service.startService(self)
        sys.stderr.write("[CONFIG] Endpoint string: %s\n" % self.endpoint_s)
        self.ticket_store.start_reaping(self.config.reap_interval)
        endpoint = serverFromString(self.reactor, self.endpoint_s)
        d = endpoint.listen(self.site)
        d.addCallback(self.recordListeningPort)
        return d

    def recordListeningPort(self, listeningPort):
        self._listeningPort = listeningPort

    def stopService(self):
        Service.stopService(self)
        self.ticket_store.stop_reaping()
        if self._listeningPort is not None:
            return self._listeningPort.stopListening()
