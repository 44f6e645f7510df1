# Application modules
from txsso.exceptions import CASError, InternalError
from txsso.tickets import (
    TicketGrantingTicket, ProxyGrantingTicket, ProxyTicket)
from txsso.utils import log_cas_event

# External modules
from twisted.python import log


class RevocationCoordinator(object):
    """
    Ends single sign-on sessions.
    """

    def __init__(self, store):
        self.store = store

    def revoke(self, tgt_id):
        """
        Destroy the TGT `tgt_id` along with every PGT derived from it and
        any unused proxy ticket those PGTs minted.  All of it happens in
        one store transaction; a failure leaves the store as it was.

        Returns the list of destroyed ticket IDs.
        """
        store = self.store
        try:
            with store.transaction():
                tgt = store.get(tgt_id, TicketGrantingTicket, include_expired=True)
                if tgt is None:
                    return []
                pgts = store.find(
                    lambda t: isinstance(t, ProxyGrantingTicket)
                        and t.granted_by_tgt == tgt.id)
                pgt_ids = set(pgt.id for pgt in pgts)
                pts = store.find(
                    lambda t: isinstance(t, ProxyTicket)
                        and t.granted_by_pgt in pgt_ids
                        and not t.consumed)
                destroyed = []
                for ticket in pts + pgts + [tgt]:
                    store.delete(ticket.id)
                    destroyed.append(ticket.id)
        except CASError:
            raise
        except Exception as ex:
            log.err(None, "Failed to revoke TGT '%s'; rolled back." % tgt_id)
            raise InternalError(str(ex))
        log_cas_event("Revoked ticket-granting ticket", [
            ('TGT', tgt_id),
            ('destroyed', len(destroyed)),])
        return destroyed
