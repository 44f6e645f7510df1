
LT_PREFIX = 'LT-'
TGT_PREFIX = 'TGT-'
ST_PREFIX = 'ST-'
PGT_PREFIX = 'PGT-'
PT_PREFIX = 'PT-'
IOU_PREFIX = 'PGTIOU-'


class Ticket(object):
    """
    Base class for everything kept in a ticket store.

    `issued_at` and `expires_at` are reactor times in seconds.  A ticket
    with no `expires_at` never times out.
    """
    prefix = None

    def __init__(self, ticket_id, issued_at, expires_at=None):
        self.id = ticket_id
        self.issued_at = issued_at
        self.expires_at = expires_at
        self.consumed = False

    def is_expired(self, now):
        return self.expires_at is not None and now >= self.expires_at

    def parent_id(self):
        """
        The ID of the ticket this one was granted by, if any, short of
        the root TGT.
        """
        return None

    def __repr__(self):
        return "<%s %s>" % (self.__class__.__name__, self.id)


class LoginTicket(Ticket):
    prefix = LT_PREFIX


class TicketGrantingTicket(Ticket):
    prefix = TGT_PREFIX

    def __init__(self, ticket_id, issued_at, expires_at, username,
                 extra_attributes=None):
        Ticket.__init__(self, ticket_id, issued_at, expires_at)
        self.username = username
        self.extra_attributes = dict(extra_attributes or {})

    @property
    def granted_by_tgt(self):
        return self.id


class ServiceTicket(Ticket):
    prefix = ST_PREFIX

    def __init__(self, ticket_id, issued_at, expires_at, service, tgt,
                 primary_credentials=False):
        Ticket.__init__(self, ticket_id, issued_at, expires_at)
        self.service = service
        self.username = tgt.username
        self.extra_attributes = dict(tgt.extra_attributes)
        self.granted_by_tgt = tgt.id
        self.primary_credentials = primary_credentials


class ProxyGrantingTicket(Ticket):
    prefix = PGT_PREFIX

    def __init__(self, ticket_id, issued_at, expires_at, iou, pgturl,
                 granting_ticket):
        Ticket.__init__(self, ticket_id, issued_at, expires_at)
        self.iou = iou
        self.pgturl = pgturl
        # The service the granting ST/PT was issued for.
        self.service = granting_ticket.service
        self.granted_by = granting_ticket.id
        self.granted_by_tgt = granting_ticket.granted_by_tgt
        self.username = granting_ticket.username
        self.extra_attributes = dict(granting_ticket.extra_attributes)

    def parent_id(self):
        return self.granted_by


class ProxyTicket(Ticket):
    prefix = PT_PREFIX
    primary_credentials = False

    def __init__(self, ticket_id, issued_at, expires_at, service, pgt):
        Ticket.__init__(self, ticket_id, issued_at, expires_at)
        self.service = service
        self.username = pgt.username
        self.extra_attributes = dict(pgt.extra_attributes)
        self.granted_by_pgt = pgt.id
        self.granted_by_tgt = pgt.granted_by_tgt

    def parent_id(self):
        return self.granted_by_pgt


# Longest prefix first.
_KINDS = sorted(
    [LoginTicket, TicketGrantingTicket, ServiceTicket,
     ProxyGrantingTicket, ProxyTicket],
    key=lambda cls: len(cls.prefix), reverse=True)

def ticket_kind(ticket_id):
    """
    Return the ticket class for `ticket_id` judged by its prefix alone,
    or None if the prefix is unknown.
    """
    if not ticket_id:
        return None
    if ticket_id.startswith(IOU_PREFIX):
        return None
    for cls in _KINDS:
        if ticket_id.startswith(cls.prefix):
            return cls
    return None
