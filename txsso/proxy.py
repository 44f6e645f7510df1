# Application modules
from txsso.exceptions import InvalidProxyCallback, NotHTTPSError
import txsso.http
from txsso.tickets import IOU_PREFIX, PGT_PREFIX, ProxyGrantingTicket, ProxyTicket
from txsso.urls import is_https_url, is_valid_service_url
from txsso.utils import http_status_filter, log_cas_event

# External modules
import treq
from twisted.internet import defer, reactor
from twisted.python import log


def build_proxy_chain(store, ticket):
    """
    Return the service URLs a proxy ticket's authority passed through,
    innermost (most recent) proxy first.  Service tickets have an empty
    chain.

    Service A validates ST-1 and gets PGT-A.  It uses PGT-A to get PT-B
    for service B.  B validates PT-B and gets PGT-B, then uses it to get
    PT-C for service C.  When C validates PT-C the chain is [B, A].
    """
    chain = []
    seen = set()
    while isinstance(ticket, ProxyTicket) and ticket.id not in seen:
        seen.add(ticket.id)
        pgt = store.get(ticket.granted_by_pgt, ProxyGrantingTicket,
                        include_expired=True)
        if pgt is None:
            break
        chain.append(pgt.service)
        ticket = store.get(pgt.granted_by, include_expired=True)
    return chain


class ProxyChainManager(object):
    """
    Establishes proxy-granting tickets through the pgtUrl callback and
    reports proxy chains.
    """

    def __init__(self, factory, config, http_client=None, reactor=reactor):
        self.factory = factory
        self.store = factory.store
        self.config = config
        self.reactor = reactor
        if http_client is None:
            if config.validate_pgturl:
                http_client = txsso.http.createVerifyingHTTPClient(reactor)
            else:
                http_client = txsso.http.createNonVerifyingHTTPClient(reactor)
        self.http_client = http_client
        factory.proxy_manager = self

    def _checkCallbackURL(self, pgturl):
        if not is_valid_service_url(pgturl):
            raise InvalidProxyCallback("The pgtUrl '%s' is not a valid URL." % pgturl)
        if self.config.validate_pgturl and not is_https_url(pgturl):
            raise NotHTTPSError("The pgtUrl '%s' is not HTTPS." % pgturl)

    def establishProxyGrantingTicket(self, pgturl, granting_ticket):
        """
        Send a new PGT ID and IOU to `pgturl`.  If the callback answers
        200, store the PGT and fire with it; otherwise fire with None.

        Never fails: the caller's validation result does not depend on
        the outcome.
        """
        try:
            self._checkCallbackURL(pgturl)
        except (InvalidProxyCallback, NotHTTPSError) as ex:
            log.msg("[WARN][CAS] Not issuing a PGT: %s" % ex)
            return defer.succeed(None)

        factory = self.factory
        pgt_id = factory.generateId(PGT_PREFIX)
        iou = factory.generateId(IOU_PREFIX)
        timeout = self.config.pgt_callback_timeout

        log_cas_event("Sending pgtId and pgtIou to client.", [
            ('pgturl', pgturl),
            ('pgtIou', iou),
            ('ticket', granting_ticket.id),])
        q = {'pgtId': pgt_id, 'pgtIou': iou}
        d = self.http_client.get(pgturl, params=q, timeout=timeout)
        d.addCallback(http_status_filter, [(200, 200)], InvalidProxyCallback)
        d.addCallback(treq.content)
        d.addCallback(
            lambda _: factory.storeProxyGrantingTicket(
                pgt_id, iou, pgturl, granting_ticket))

        def log_pgt_created(pgt):
            log_cas_event("Created proxy-granting ticket", [
                ('PGT', pgt.id),
                ('pgtIou', pgt.iou),
                ('pgturl', pgturl),
                ('TGT', pgt.granted_by_tgt),])
            return pgt

        def declined(err):
            log_cas_event("Proxy callback failed", [
                ('pgturl', pgturl),
                ('ticket', granting_ticket.id),
                ('reason', err.getErrorMessage()),])
            return None

        d.addCallback(log_pgt_created)
        d.addErrback(declined)
        d.addTimeout(timeout, self.reactor, onTimeoutCancel=lambda result, t: None)
        return d

    def buildProxyChain(self, ticket):
        return build_proxy_chain(self.store, ticket)
