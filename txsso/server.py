#Standard library
import html
import string
from textwrap import dedent
from urllib.parse import urlencode
from xml.sax.saxutils import escape as xml_escape

#Application modules
from txsso.constants import (
    VIEW_LOGIN, VIEW_LOGIN_SUCCESS, VIEW_INVALID_SERVICE, VIEW_ERROR_5XX,
    VIEW_BAD_REQUEST, VIEW_NOT_FOUND)
from txsso.exceptions import (
    AuthenticationError, BadRequestError, BadPGT, CASError, InvalidRequest,
    InvalidService, InvalidTicket, ViewNotImplementedError,
    response_status_from_error)
from txsso.factory import TicketFactory
from txsso.proxy import ProxyChainManager
from txsso.revocation import RevocationCoordinator
from txsso.tickets import ProxyTicket
from txsso.urls import (
    clean_service_url, is_valid_service_url, service_uri_with_ticket)
from txsso.utils import log_cas_event
from txsso.validator import Validator

#External modules
from klein import Klein
from twisted.internet import defer
from twisted.python import log
from twisted.python.failure import Failure
import werkzeug.exceptions


CAS_NS = "http://www.yale.edu/tp/cas"
EXPIRED_COOKIE = 'Thu, 01 Jan 1970 00:00:00 GMT'

#=======================================================================

def redirect303(request, url):
    """
    Redirect using 303
    """
    if not isinstance(url, bytes):
        url = url.encode('utf-8')
    request.setResponseCode(303)
    request.setHeader(b"location", url)
    return b""

def _arg_key(param):
    if isinstance(param, bytes):
        return param
    return param.encode('utf-8')

def _arg_value(value):
    if isinstance(value, bytes):
        return value.decode('utf-8')
    return value

def get_single_param(request, param):
    """
    Checks to make sure there is *exactly* one parameter, `param` in
    request.args and returns its value.
    If the named parameter does not exist or exists multiple times, this
    function raises a txsso.exceptions.BadRequestError
    """
    args = request.args
    key = _arg_key(param)
    if not key in args:
        raise BadRequestError("The parameter '%s' is missing." % param)
    value_list = args[key]
    if len(value_list) != 1:
        raise BadRequestError("Multiple values for parameter '%s' were provided." % param)
    return _arg_value(value_list[0])

def get_single_param_or_default(request, param, default=None):
    """
    Checks to make sure there is *exactly* one parameter, `param` in
    request.args and returns its value.

    If the named parameter does not exist, return `default`.

    If the named parameter exists multiple times, this
    function raises a txsso.exceptions.BadRequestError.
    """
    args = request.args
    key = _arg_key(param)
    if not key in args:
        return default
    value_list = args[key]
    if len(value_list) != 1:
        raise BadRequestError("Multiple values for parameter '%s' were provided." % param)
    return _arg_value(value_list[0])

def escape_html(text):
    """Produce entities within text."""
    return html.escape(text, quote=True)

def client_ip(request):
    return request.getClientAddress().host

def log_http_event(request, redact_args=None):
    args = dict(request.args)
    if redact_args is not None:
        for arg in redact_args:
            key = _arg_key(arg)
            if key in args:
                args[key] = ['*******']
    msg = '''[INFO][HTTP] method="%(method)s" path="%(path)s" args="%(args)s"''' % {
        'path': _arg_value(request.path),
        'method': _arg_value(request.method),
        'args': args,
        }
    log.msg(msg)

def log_ticket_expiration(ticket, explicit):
    """
    Log tickets that timed out or went with their parent.
    """
    if not explicit:
        attribs = [('ticket', ticket.id)]
        for key, label in [('service', 'service'), ('username', 'username'),
                           ('granted_by_tgt', 'TGT'), ('granted_by_pgt', 'PGT')]:
            val = getattr(ticket, key, None)
            if val is not None:
                attribs.append((label, val))
        log_cas_event("Ticket expired", attribs)

def make_cas_attributes(attribs):
    """
    Create CAS attributes from a mapping of names to values.  A list value
    produces one element per item.

    E.g.:
    <cas:attributes>
         <cas:email>jdoe@example.org</cas:email>
         <cas:affiliation>staff</cas:affiliation>
         <cas:affiliation>faculty</cas:affiliation>
    </cas:attributes>
    """
    if not attribs:
        return ""
    parts = ["        <cas:attributes>"]
    for k in sorted(attribs):
        values = attribs[k]
        if not isinstance(values, (list, tuple)):
            values = [values]
        name = sanitize_keyname(k)
        for v in values:
            parts.append("            <cas:%s>%s</cas:%s>" % (name, xml_escape(str(v)), name))
    parts.append("        </cas:attributes>")
    return '\n'.join(parts)

def sanitize_keyname(name):
    include = set(string.ascii_letters + "-_")
    s = ''.join(ch for ch in name if ch in include)
    return s

def xml_failure(code, message, element="authenticationFailure"):
    return dedent("""\
        <cas:serviceResponse xmlns:cas="%(ns)s">
            <cas:%(element)s code="%(code)s">
                %(message)s
            </cas:%(element)s>
        </cas:serviceResponse>
        """) % {
            'ns': CAS_NS,
            'element': element,
            'code': xml_escape(code),
            'message': xml_escape(message),}


#=======================================================================
# The server app
#=======================================================================

class ServerApp(object):

    app = Klein()

    def __init__(self, config, ticket_store, authenticator, http_client=None,
                 page_views=None):
        """
        Initialize an instance of the CAS server.

        @param config: A txsso.settings.CASConfig.
        @param ticket_store: The ITicketStore to use.  Its reactor is used
            for ticket lifetimes and the proxy callback timeout.
        @param authenticator: An IAuthenticator that checks primary
            credentials.
        @param http_client: The treq HTTP client used for proxy callbacks.
            If None, one is created according to `config.validate_pgturl`.
        @param page_views: A mapping of functions that are used to render
            custom pages.
            - All views may either be synchronous or async (deferreds).
            - List of views:
                - login: rendered when credentials are requested.
                    - Should accept args (loginTicket, service, message, request).
                    - Rendered page should POST to /login according to CAS protocol.
                - login_success: Rendered when no service is specified and a
                    valid SSO session exists.
                    - Should accept args (avatar, request)
                - invalid_service: Rendered when an invalid service is provided.
                    - Should accept args (service, request).
                - error5xx: Rendered on an internal error.
                    - Should accept args (err, request).
                    - `err` is a twisted.python.failure.Failure
                - bad_request: Rendered when query parameters are repeated.
                    - Should accept args (err, request).
                - not_found: Rendered when the requested resource is not found.
                    - Should accept `request`.
        """
        assert ticket_store is not None, "No Ticket Store was configured."
        assert authenticator is not None, "No Authenticator was configured."
        reactor = ticket_store.reactor
        self.config = config
        self.ticket_store = ticket_store
        self.authenticator = authenticator
        self.cookie_name = config.cookie_name.encode('utf-8')
        self.factory = TicketFactory(ticket_store, config, reactor=reactor)
        self.proxy_manager = ProxyChainManager(
            self.factory, config, http_client=http_client, reactor=reactor)
        self.validator = Validator(ticket_store)
        self.revocation = RevocationCoordinator(ticket_store)

        default_page_views = {
                VIEW_LOGIN: self._renderLogin,
                VIEW_LOGIN_SUCCESS: self._renderLoginSuccess,
                VIEW_INVALID_SERVICE: self._renderInvalidService,
                VIEW_ERROR_5XX: self._renderError5xx,
                VIEW_BAD_REQUEST: self._renderBadRequest,
                VIEW_NOT_FOUND: self._renderNotFound,
            }
        self._default_page_views = default_page_views
        if page_views is None:
            page_views = default_page_views
        else:
            temp = dict(default_page_views)
            temp.update(page_views)
            page_views = temp
            del temp
        self.page_views = page_views

        self.ticket_store.register_ticket_expiration_callback(log_ticket_expiration)

    def _log_failure(self, err, request):
        log.msg('[ERROR] type="error" client_ip="%s" uri="%s"' % (
            client_ip(request), _arg_value(request.uri)))
        log.err(err)

    def _get_page_view(self, symbol, *args):
        def eb(err, symbol, *args):
            err.trap(ViewNotImplementedError)
            log.msg("[WARN] Page view '%s' is not implemented; using the default." % symbol)
            return defer.maybeDeferred(self._default_page_views[symbol], *args)

        d = defer.maybeDeferred(self.page_views[symbol], *args)
        d.addErrback(eb, symbol, *args)
        return d

    def _internalError(self, err, request):
        if err is None:
            err = Failure()
        self._log_failure(err, request)
        request.setResponseCode(500)
        return self._get_page_view(VIEW_ERROR_5XX, err, request)

    def _invalidService(self, service, request):
        log_cas_event("Invalid service", [
            ('client_ip', client_ip(request)),
            ('service', service),])
        request.setResponseCode(422)
        return self._get_page_view(VIEW_INVALID_SERVICE, service, request)

    def _setCookie(self, request, tgt):
        path = request.path.rsplit(b'/', 1)[0] + b'/'
        request.addCookie(
            self.cookie_name, tgt.id.encode('utf-8'), path=path,
            secure=bool(self.config.require_ssl), httpOnly=True)

    def _clearCookie(self, request):
        path = request.path.rsplit(b'/', 1)[0] + b'/'
        request.addCookie(
            self.cookie_name, b'', path=path, expires=EXPIRED_COOKIE,
            secure=bool(self.config.require_ssl), httpOnly=True)

    def _getCookie(self, request):
        tgc = request.getCookie(self.cookie_name)
        if not tgc:
            return None
        return _arg_value(tgc)

    def _presentLogin(self, request, service, message=None):
        lt = self.factory.issueLoginTicket()
        return self._get_page_view(VIEW_LOGIN, lt.id, service, message, request)

    def _issueServiceTicket(self, request, service, tgt, primary_credentials):
        st = self.factory.issueServiceTicket(
            service, tgt.username, tgt, primary_credentials=primary_credentials)
        log_cas_event("Created service ticket", [
            ('client_ip', client_ip(request)),
            ('ticket', st.id),
            ('service', service),
            ('TGT', tgt.id),
            ('primary_credentials', primary_credentials),])
        return redirect303(request, service_uri_with_ticket(service, st.id))

    @defer.inlineCallbacks
    def _loginSuccess(self, request, username):
        avatar = yield self.authenticator.find_user({'username': username})
        body = yield self._get_page_view(VIEW_LOGIN_SUCCESS, avatar, request)
        return body

    def _renderLogin(self, ticket, service, message, request):
        html_parts = []
        html_parts.append(dedent('''\
        <html>
            <body>
        '''))
        if message:
            html_parts.append(
                '        <p class="error">%s</p>' % escape_html(message))
        html_parts.append(dedent('''\
                <form method="post" action="">
                    Username: <input type="text" name="username" />
                    <br />Password: <input type="password" name="password" />
                    <input type="hidden" name="lt" value="%(lt)s" />
        ''') % {
            'lt': escape_html(ticket),
        })
        if service != "":
            html_parts.append(
                '            '
                '<input type="hidden" name="service" value="%(service)s" />' % {
                    'service': escape_html(service)
                })
        html_parts.append(dedent('''\
                    <input type="submit" value="Sign in" />
                </form>
            </body>
        </html>
        '''))
        return '\n'.join(html_parts)

    def _renderLoginSuccess(self, avatar, request):
        username = avatar.username if avatar is not None else ''
        html = dedent("""\
            <html>
                <body>
                    <h1>A CAS Session Exists</h1>
                    <p>
                        A CAS session exists for account '%s'.
                    </p>
                </body>
            </html>
            """) % escape_html(_arg_value(username))
        return html

    def _renderInvalidService(self, service, request):
        html = dedent("""\
            <html>
                <head>
                    <title>Invalid Service</title>
                </head>
                <body>
                    <h1>Invalid Service</h1>
                    <p>
                        The service '%s' is not a valid URL.
                    </p>
                </body>
            </html>
            """) % escape_html(service)
        return html

    def _renderError5xx(self, err, request):
        html = dedent("""\
            <html>
                <head>
                    <title>Internal Error - 500</title>
                </head>
                <body>
                    <h1>HTTP 500 - Internal Error</h1>
                    <p>
                        Please contact your system administrator.
                    </p>
                </body>
            </html>
            """)
        return html

    def _renderBadRequest(self, err, request):
        html = dedent("""\
            <html>
                <head>
                    <title>Bad Request - 400</title>
                </head>
                <body>
                    <h1>HTTP 400 - Bad Request</h1>
                    <p>
                        %s
                    </p>
                </body>
            </html>
            """) % escape_html(err.getErrorMessage())
        return html

    def _renderNotFound(self, request):
        return dedent("""\
            <html>
            <head>
                <title>Not Found</title>
            </head>
            <body>
                <h1>Not Found</h1>
                <p>
                The resource you were looking for was not found.
                </p>
            </body>
            </html>
            """)

    @app.route('/login', methods=['GET'])
    def login_GET(self, request):
        """
        Present a username/password login page to the browser.
        OR
        authenticate using an existing TGC.
        """
        log_http_event(request)
        service = get_single_param_or_default(request, 'service', "")
        renew = get_single_param_or_default(request, 'renew', "")
        gateway = get_single_param_or_default(request, 'gateway', "")
        if service != "" and not is_valid_service_url(service):
            return self._invalidService(service, request)
        service = clean_service_url(service)
        try:
            tgc = self._getCookie(request)
            if tgc is not None and renew == "":
                try:
                    tgt = self.validator.validateTicketGrantingTicket(tgc)
                except InvalidTicket:
                    self._clearCookie(request)
                else:
                    log_cas_event("Authenticated via TGC", [
                        ('client_ip', client_ip(request)),
                        ('username', tgt.username),])
                    if service != "":
                        return self._issueServiceTicket(request, service, tgt, False)
                    return self._loginSuccess(request, tgt.username)
            if gateway != "":
                if service != "":
                    #Redirect to `service` with no ticket.
                    return redirect303(request, service)
                return self._presentLogin(
                    request, service,
                    "The gateway request cannot be fulfilled without a service.")
            return self._presentLogin(request, service)
        except InvalidTicket as ex:
            # The session ended between the cookie check and ST issuance.
            log.msg("[INFO][CAS] %s" % ex)
            self._clearCookie(request)
            return self._presentLogin(request, service)
        except Exception:
            return self._internalError(None, request)

    @app.route('/login', methods=['POST'])
    @defer.inlineCallbacks
    def login_POST(self, request):
        """
        Accept a username/password, verify the credentials and redirect them
        appropriately.
        """
        log_http_event(request, redact_args=['password'])
        service = get_single_param_or_default(request, 'service', "")
        username = get_single_param_or_default(request, 'username', "").strip()
        password = get_single_param_or_default(request, 'password', "")
        lt = get_single_param_or_default(request, 'lt', "")
        if service != "" and not is_valid_service_url(service):
            body = yield self._invalidService(service, request)
            return body
        service = clean_service_url(service)
        try:
            self.validator.validateLoginTicket(lt)
        except InvalidTicket as ex:
            log_cas_event("Invalid login ticket", [
                ('client_ip', client_ip(request)),
                ('ticket', lt),
                ('reason', ex.message),])
            request.setResponseCode(422)
            body = yield self._presentLogin(
                request, service, "Your login form has expired.  Please try again.")
            return body
        credentials = {
            'username': username,
            'password': password,
            'service': service,
            'request': request,}
        try:
            valid = yield self.authenticator.validate(credentials)
        except AuthenticationError as ex:
            request.setResponseCode(401)
            body = yield self._presentLogin(request, service, str(ex))
            return body
        if not valid:
            log_cas_event("Failed to authenticate using primary credentials", [
                ('client_ip', client_ip(request)),
                ('username', username),])
            request.setResponseCode(401)
            body = yield self._presentLogin(
                request, service, "Invalid username or password.")
            return body
        log_cas_event("Authenticated using primary credentials", [
            ('client_ip', client_ip(request)),
            ('username', username),])
        try:
            avatar = yield self.authenticator.find_user(credentials)
            attribs = {}
            if avatar is not None:
                username = _arg_value(avatar.username)
                for name in self.authenticator.extra_attributes_to_extract():
                    if name in avatar.attribs:
                        attribs[name] = avatar.attribs[name]
            old_tgc = self._getCookie(request)
            if old_tgc is not None:
                self.revocation.revoke(old_tgc)
            tgt = self.factory.issueTicketGrantingTicket(username, attribs)
            self._setCookie(request, tgt)
            attribs = [
                ('client_ip', client_ip(request)),
                ('username', username),
                ('TGC', tgt.id),]
            if service != "":
                attribs.append(('service', service))
            log_cas_event("Created TGC", attribs)
            if service != "":
                return self._issueServiceTicket(request, service, tgt, True)
            body = yield self._get_page_view(VIEW_LOGIN_SUCCESS, avatar, request)
            return body
        except Exception:
            body = yield self._internalError(None, request)
            return body

    @app.route('/logout', methods=['GET'])
    def logout_GET(self, request):
        log_http_event(request)
        service = get_single_param_or_default(request, 'service', "")
        if service == "":
            service = get_single_param_or_default(request, 'destination', "")
        gateway = get_single_param_or_default(request, 'gateway', "")
        tgc = self._getCookie(request)
        if tgc is not None:
            #Delete the cookie.
            self._clearCookie(request)
            #Expire the ticket.
            try:
                destroyed = self.revocation.revoke(tgc)
            except CASError:
                return self._internalError(None, request)
            log_cas_event("Explicitly logged out of SSO", [
                ('client_ip', client_ip(request)),
                ('TGC', tgc),
                ('destroyed', len(destroyed)),])
        # The session is ended even if the service is unusable.
        if service != "" and not is_valid_service_url(service):
            return self._invalidService(service, request)
        service = clean_service_url(service)
        if gateway != "" and service != "":
            return redirect303(request, service)
        if service != "":
            return redirect303(request, 'login?' + urlencode({'service': service}))
        return redirect303(request, 'login')

    @app.route('/serviceValidate', methods=['GET'])
    def serviceValidate_GET(self, request):
        log_http_event(request)
        return self._serviceOrProxyValidate(request, False)

    @app.route('/proxyValidate', methods=['GET'])
    def proxyValidate_GET(self, request):
        log_http_event(request)
        return self._serviceOrProxyValidate(request, True)

    @defer.inlineCallbacks
    def _serviceOrProxyValidate(self, request, proxyValidate=True):
        """
        Validate a service ticket or proxy ticket, consuming the ticket in the process.
        """
        ticket_id = get_single_param_or_default(request, 'ticket', "")
        service = get_single_param_or_default(request, 'service', "")
        pgturl = get_single_param_or_default(request, 'pgtUrl', "")
        renew = get_single_param_or_default(request, 'renew', "") != ""
        request.setHeader(b"content-type", b"text/xml; charset=UTF-8")
        try:
            if proxyValidate:
                ticket, proxies = self.validator.validateProxyTicket(
                    service, ticket_id, renew)
            else:
                ticket = self.validator.validateServiceTicket(
                    service, ticket_id, renew)
                proxies = None
        except CASError as ex:
            log_cas_event("Failed to validate ticket.", [
                ('client_ip', client_ip(request)),
                ('ticket', ticket_id),
                ('service', service),
                ('code', ex.code),])
            request.setResponseCode(response_status_from_error(ex))
            return xml_failure(ex.code, ex.message)

        iou = None
        if pgturl != "":
            pgt = yield self.factory.issueProxyGrantingTicket(pgturl, ticket)
            if pgt is not None:
                iou = pgt.iou

        attribs = [
            ('client_ip', client_ip(request)),
            ('user', ticket.username),
            ('ticket', ticket.id),
            ('service', service),
            ('TGT', ticket.granted_by_tgt),]
        if isinstance(ticket, ProxyTicket):
            attribs.append(("PGT", ticket.granted_by_pgt))
        if proxies:
            attribs.append(("proxy_chain", ', '.join(proxies)))
        log_cas_event("Validated ticket.", attribs)

        doc_begin = dedent("""\
            <cas:serviceResponse xmlns:cas="%s">
                <cas:authenticationSuccess>
                    <cas:user>%s</cas:user>
            """) % (CAS_NS, xml_escape(ticket.username))
        doc_attributes = make_cas_attributes(ticket.extra_attributes)
        doc_proxy = ""
        if iou is not None:
            doc_proxy = "        <cas:proxyGrantingTicket>%s</cas:proxyGrantingTicket>" % (
                xml_escape(iou))
        doc_proxy_chain = ""
        if proxies:
            parts = ['''        <cas:proxies>''']
            for proxy in proxies:
                parts.append("""            <cas:proxy>%s</cas:proxy>""" % xml_escape(proxy))
            parts.append('''        </cas:proxies>''')
            doc_proxy_chain = '\n'.join(parts)
            del parts
        doc_end = dedent("""\
                </cas:authenticationSuccess>
            </cas:serviceResponse>
            """)
        doc_parts = [doc_begin]
        for part in (doc_attributes, doc_proxy, doc_proxy_chain):
            if len(part) > 0:
                doc_parts.append(part)
        doc_parts.append(doc_end)
        return '\n'.join(doc_parts)

    @app.route('/proxy', methods=['GET'])
    def proxy_GET(self, request):
        log_http_event(request)
        pgt = get_single_param_or_default(request, 'pgt', "")
        targetService = get_single_param_or_default(request, 'targetService', "")
        request.setHeader(b"content-type", b"text/xml; charset=UTF-8")
        try:
            if pgt == "" or targetService == "":
                raise InvalidRequest(
                    "Both the 'pgt' and 'targetService' parameters are required.")
            try:
                pt = self.factory.issueProxyTicket(targetService, pgt)
            except InvalidService as ex:
                raise InvalidRequest(ex.message)
        except (InvalidRequest, BadPGT) as ex:
            log_cas_event("Failed to issue proxy ticket", [
                ('client_ip', client_ip(request)),
                ('targetService', targetService),
                ('PGT', pgt),
                ('code', ex.code),])
            request.setResponseCode(response_status_from_error(ex))
            return xml_failure(ex.code, ex.message, element="proxyFailure")
        except Exception as ex:
            self._log_failure(None, request)
            request.setResponseCode(500)
            return xml_failure('INTERNAL_ERROR', str(ex), element="proxyFailure")

        log_cas_event("Issued proxy ticket", [
            ('client_ip', client_ip(request)),
            ('ticket', pt.id),
            ('targetService', targetService),
            ('PGT', pgt),])
        return dedent("""\
            <cas:serviceResponse xmlns:cas="%(ns)s">
                <cas:proxySuccess>
                    <cas:proxyTicket>%(ticket)s</cas:proxyTicket>
                </cas:proxySuccess>
            </cas:serviceResponse>
            """) % {'ns': CAS_NS, 'ticket': xml_escape(pt.id)}

    @app.handle_errors(werkzeug.exceptions.NotFound)
    def error_handler(self, request, failure):
        log.msg('[ERROR] type="not_found" client_ip="%s" uri="%s"' % (
                    client_ip(request), _arg_value(request.uri)))
        request.setResponseCode(404)
        return self._get_page_view(VIEW_NOT_FOUND, request)

    @app.handle_errors(BadRequestError)
    def handle_bad_request(self, request, failure):
        log.msg('[ERROR] type="bad_request" client_ip="%s" uri="%s"' % (
                    client_ip(request), _arg_value(request.uri)))
        request.setResponseCode(400)
        return self._get_page_view(VIEW_BAD_REQUEST, failure, request)
