# Application modules
from txsso.exceptions import AuthenticationError
from txsso.interface import IAuthenticator, ICASUser

# External modules
from twisted.cred.credentials import UsernamePassword
from twisted.cred.error import UnauthorizedLogin
from twisted.cred.portal import Portal
from twisted.internet import defer
from twisted.python import log
from zope.interface import implementer


def _as_bytes(s):
    if isinstance(s, bytes):
        return s
    return s.encode('utf-8')


@implementer(IAuthenticator)
class CredAuthenticator(object):
    """
    Checks a username and password with twisted.cred checkers and looks
    the user up in a realm.

    `credentials` is a mapping with `username` and `password` keys.
    """

    def __init__(self, checkers, realm, extra_attributes=None):
        self.portal = Portal(realm)
        for checker in checkers:
            self.portal.registerChecker(checker)
        self.realm = realm
        self._extra_attributes = list(extra_attributes or [])

    def extra_attributes_to_extract(self):
        return list(self._extra_attributes)

    def _credentials(self, credentials):
        return UsernamePassword(
            _as_bytes(credentials.get('username') or ''),
            _as_bytes(credentials.get('password') or ''))

    def validate(self, credentials):
        """
        Fires with True if the username and password are accepted, False
        if they are refused.  Fails with AuthenticationError if a checker
        broke while deciding.
        """
        d = self.portal.login(self._credentials(credentials), None, ICASUser)

        def accepted(result):
            iface, avatar, logout = result
            logout()
            return True

        def refused(err):
            if err.check(UnauthorizedLogin):
                log.msg("[INFO][CAS] Credentials refused for '%s'." % (
                    credentials.get('username'),))
                return False
            log.err(err, "Credential checker failed.")
            raise AuthenticationError(
                "Unable to check credentials: %s" % err.getErrorMessage())

        return d.addCallbacks(accepted, refused)

    def find_user(self, credentials):
        """
        Fires with the ICASUser avatar named by `credentials['username']`,
        or None.
        """
        username = credentials.get('username')
        if not username:
            return defer.succeed(None)
        d = defer.maybeDeferred(
            self.realm.requestAvatar, username, None, ICASUser)

        def extract(result):
            iface, avatar, logout = result
            logout()
            return avatar

        def no_user(err):
            log.msg("[WARN][CAS] No user '%s': %s" % (
                username, err.getErrorMessage()))
            return None

        return d.addCallbacks(extract, no_user)
