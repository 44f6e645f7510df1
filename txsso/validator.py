# Application modules
from txsso.exceptions import (
    CASError, InternalError, InvalidRequest, InvalidService,
    InvalidTicket, InvalidTicketSpec)
from txsso.tickets import (
    LoginTicket, TicketGrantingTicket, ServiceTicket, ProxyTicket,
    ticket_kind)
from txsso.urls import are_services_equal, is_valid_service_url
from txsso.proxy import build_proxy_chain

# External modules
from twisted.python import log


class Validator(object):
    """
    Checks tickets presented by browsers and services.

    Single-use tickets are consumed by the same atomic step that checks
    them, so two concurrent validations of one ticket never both succeed.
    """

    def __init__(self, store):
        self.store = store

    def validateLoginTicket(self, ticket_id):
        if not ticket_id:
            raise InvalidTicket("No login ticket was presented.")
        return self.store.consume(ticket_id, LoginTicket)

    def validateTicketGrantingTicket(self, ticket_id):
        if not ticket_id:
            raise InvalidTicket("No ticket-granting ticket was presented.")
        tgt = self.store.get(ticket_id, TicketGrantingTicket)
        if tgt is None:
            raise InvalidTicket("TGT '%s' is invalid." % ticket_id)
        return tgt

    def _checkServiceURL(self, service):
        if not is_valid_service_url(service):
            raise InvalidService("Service '%s' is not a valid URL." % service)

    def _serviceCheck(self, service, renew):
        def check(ticket):
            if not are_services_equal(ticket.service, service):
                raise InvalidService(
                    "Ticket '%s' was not issued for service '%s'." % (ticket.id, service))
            if renew and not ticket.primary_credentials:
                raise InvalidTicket(
                    "Ticket '%s' was not issued from primary credentials." % ticket.id)
        return check

    def _consume(self, ticket_id, kinds, service, renew):
        try:
            return self.store.consume(
                ticket_id, kinds, self._serviceCheck(service, renew))
        except CASError:
            raise
        except Exception as ex:
            log.err(None, "Unexpected error while validating '%s'." % ticket_id)
            raise InternalError(str(ex))

    def validateServiceTicket(self, service, ticket_id, renew=False):
        """
        Validate and consume a service ticket.  Proxy tickets are refused
        with INVALID_TICKET_SPEC.
        """
        if not service or not ticket_id:
            raise InvalidRequest(
                "Both the 'service' and 'ticket' parameters are required.")
        self._checkServiceURL(service)
        kind = ticket_kind(ticket_id)
        if kind is ProxyTicket:
            raise InvalidTicketSpec(
                "Ticket '%s' is a proxy ticket; use /proxyValidate." % ticket_id)
        if kind is not ServiceTicket:
            raise InvalidTicket("Ticket '%s' not recognized." % ticket_id)
        return self._consume(ticket_id, ServiceTicket, service, renew)

    def validateProxyTicket(self, service, ticket_id, renew=False):
        """
        Validate and consume a service or proxy ticket.  Returns
        `(ticket, proxies)` where `proxies` lists the services the ticket's
        authority was proxied through, innermost first.
        """
        if not service or not ticket_id:
            raise InvalidRequest(
                "Both the 'service' and 'ticket' parameters are required.")
        self._checkServiceURL(service)
        kind = ticket_kind(ticket_id)
        if kind not in (ServiceTicket, ProxyTicket):
            raise InvalidTicket("Ticket '%s' not recognized." % ticket_id)
        ticket = self._consume(
            ticket_id, (ServiceTicket, ProxyTicket), service, renew)
        return ticket, build_proxy_chain(self.store, ticket)
