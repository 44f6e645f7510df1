
# External modules.
import treq
from twisted.python import log

def http_status_filter(response, allowed, ex, msg=None, include_resp_text=True):
    """
    Checks the response status and determines if it is in one of the
    allowed ranges.  If not, it raises `ex()`.

    `ex` is a callable that results in an Exception to be raised,
        (typically an exception class).
    `allowed` is a sequence of (start, end) valid status ranges.
    """
    code = response.code
    in_range = False
    for start_range, end_range in allowed:
        if code >= start_range and code <= end_range:
            in_range = True
            break
    if not in_range:
        def raise_error(body, ex):
            ex_msg = ["HTTP status %d." % code]
            if msg is not None:
                ex_msg.append(msg)
            if include_resp_text:
                ex_msg.append(body.decode('utf-8', 'replace'))
            raise ex('\n'.join(ex_msg))
        # Need to still deliver the response body or Twisted may
        # hang.
        d = treq.content(response)
        d.addCallback(raise_error, ex)
        return d
    return response

def log_cas_event(label, attribs):
    """
    Log a CAS event.
    """
    parts = []
    for k,v in attribs:
        parts.append('''%s="%s"''' % (k, v))
    tail = ' '.join(parts)
    log.msg('''[INFO][CAS] label="%s" %s''' % (label, tail))
