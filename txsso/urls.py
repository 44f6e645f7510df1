
# Standard library
from urllib.parse import urlparse, urlunparse, parse_qsl, urlencode

TICKET_PARAM = 'ticket'

def get_default_port(scheme):
    if scheme.lower() == 'https':
        return 443
    elif scheme.lower() == 'http':
        return 80
    else:
        return None

def normalize_netloc(p):
    """
    Return the netloc of parsed URL `p` with the host lowercased and the
    default port made explicit.  Raises ValueError for a bad port.
    """
    userinfo = p.netloc.rpartition('@')[0]
    host = p.hostname or ''
    if ':' in host:
        host = "[%s]" % host
    port = p.port
    if port is None:
        port = get_default_port(p.scheme)
    netloc = host
    if port is not None:
        netloc = "{0}:{1}".format(netloc, port)
    if userinfo:
        netloc = "{0}@{1}".format(userinfo, netloc)
    return netloc

def _query_without_ticket(query):
    return [(k, v) for k, v in parse_qsl(query, keep_blank_values=True)
            if k != TICKET_PARAM]

def is_valid_service_url(url):
    """
    True if `url` is an absolute http(s) URL with a host part.
    """
    if not url:
        return False
    try:
        p = urlparse(url)
        # Accessing the port validates it.
        p.port
    except ValueError:
        return False
    return p.scheme.lower() in ('http', 'https') and bool(p.hostname)

def is_https_url(url):
    if not is_valid_service_url(url):
        return False
    return urlparse(url).scheme.lower() == 'https'

def clean_service_url(url):
    """
    Remove the `ticket` parameter a client may have left on a service URL
    it received in a redirect.  A URL that cannot be parsed is returned
    as is.
    """
    if not url:
        return url
    try:
        p = urlparse(url)
    except ValueError:
        return url
    if TICKET_PARAM not in dict(parse_qsl(p.query, keep_blank_values=True)):
        if url.endswith('?'):
            return url[:-1]
        return url
    query = urlencode(_query_without_ticket(p.query))
    return urlunparse((p.scheme, p.netloc, p.path, p.params, query, p.fragment))

def service_uri_with_ticket(service, ticket):
    """
    Append `ticket=<ticket>` to the service URL.
    """
    p = urlparse(service)
    pairs = _query_without_ticket(p.query)
    pairs.append((TICKET_PARAM, ticket))
    query = urlencode(pairs)
    return urlunparse((p.scheme, p.netloc, p.path, p.params, query, p.fragment))

def are_services_equal(url0, url1):
    """
    Compare two service URLs.  Scheme and host are compared without regard
    to case, default ports are made explicit, and the `ticket` query
    parameter is ignored.  All other query parameters must match, in any
    order.  A URL that cannot be parsed equals nothing.
    """
    try:
        p0 = urlparse(url0)
        p1 = urlparse(url1)
        netloc0 = normalize_netloc(p0)
        netloc1 = normalize_netloc(p1)
    except ValueError:
        return False
    if p0.scheme.lower() != p1.scheme.lower():
        return False
    if netloc0 != netloc1:
        return False
    if p0.path != p1.path:
        return False
    if p0.params != p1.params:
        return False
    if p0.fragment != p1.fragment:
        return False
    qs0 = set(_query_without_ticket(p0.query))
    qs1 = set(_query_without_ticket(p1.query))
    if qs0 != qs1:
        return False
    return True
