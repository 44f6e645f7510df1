# Application module
from txsso.casuser import User
from txsso.exceptions import ConfigurationError
from txsso.interface import ICASUser

# External module
from twisted.cred.portal import IRealm
from twisted.internet import defer
from zope.interface import implementer


@implementer(IRealm)
class BasicRealm(object):
    """
    A Basic user realm that maps an avatar ID to an avatar with a matching
    username and no attributes.
    """
    tag = "basic_realm"

    def attributesFor(self, avatarId):
        return {}

    def requestAvatar(self, avatarId, mind, *interfaces):
        def cb():
            if not ICASUser in interfaces:
                raise NotImplementedError("This realm only implements ICASUser.")
            avatar = User(avatarId, self.attributesFor(avatarId))
            return (ICASUser, avatar, avatar.logout)
        return defer.maybeDeferred(cb)


class DemoRealm(BasicRealm):
    """
    A demonstration realm that creates an avatar from an ID with phony
    `email` and `domain` attributes.
    """
    tag = "demo_realm"

    def attributesFor(self, avatarId):
        return {
            'email': "%s@example.org" % avatarId,
            'domain': 'example.org'}


_REALMS = dict((cls.tag, cls) for cls in (BasicRealm, DemoRealm))

def build_realm(tag):
    """
    Produce the realm registered under `tag`.
    """
    try:
        return _REALMS[tag]()
    except KeyError:
        raise ConfigurationError("Realm type '%s' is not available." % tag)
