# Application modules
from txsso.authenticator import CredAuthenticator
from txsso.exceptions import AuthenticationError, ConfigurationError
from txsso.interface import IAuthenticator, ICASUser
from txsso.realm import BasicRealm, DemoRealm, build_realm
# External modules
from twisted.cred.checkers import (
    ICredentialsChecker, InMemoryUsernamePasswordDatabaseDontUse)
from twisted.cred.credentials import IUsernamePassword
from twisted.internet import defer
from twisted.trial.unittest import TestCase
from zope.interface import implementer
from zope.interface.verify import verifyObject


@implementer(ICredentialsChecker)
class BrokenChecker(object):
    credentialInterfaces = (IUsernamePassword,)

    def requestAvatarId(self, credentials):
        return defer.fail(RuntimeError("directory unavailable"))


class RealmTest(TestCase):

    def test_build_realm(self):
        self.assertIsInstance(build_realm('basic_realm'), BasicRealm)
        self.assertIsInstance(build_realm('demo_realm'), DemoRealm)
        self.assertRaises(ConfigurationError, build_realm, 'ldap_realm')

    @defer.inlineCallbacks
    def test_demo_realm(self):
        iface, avatar, logout = yield DemoRealm().requestAvatar(
            'jane', None, ICASUser)
        self.assertIs(iface, ICASUser)
        self.assertEqual(avatar.username, 'jane')
        self.assertEqual(avatar.attribs, {
            'email': 'jane@example.org', 'domain': 'example.org'})

    @defer.inlineCallbacks
    def test_basic_realm(self):
        iface, avatar, logout = yield BasicRealm().requestAvatar(
            'jane', None, ICASUser)
        self.assertEqual(avatar.attribs, {})

    def test_other_interface(self):
        d = BasicRealm().requestAvatar('jane', None, IUsernamePassword)
        return self.assertFailure(d, NotImplementedError)


class CredAuthenticatorTest(TestCase):

    def setUp(self):
        checker = InMemoryUsernamePasswordDatabaseDontUse(jane=b'secret')
        self.authenticator = CredAuthenticator(
            [checker], DemoRealm(), extra_attributes=['email'])

    def test_interface(self):
        self.assertTrue(verifyObject(IAuthenticator, self.authenticator))

    @defer.inlineCallbacks
    def test_validate(self):
        valid = yield self.authenticator.validate(
            {'username': 'jane', 'password': 'secret'})
        self.assertTrue(valid)

    @defer.inlineCallbacks
    def test_refused(self):
        valid = yield self.authenticator.validate(
            {'username': 'jane', 'password': 'wrong'})
        self.assertFalse(valid)
        valid = yield self.authenticator.validate(
            {'username': 'nobody', 'password': 'secret'})
        self.assertFalse(valid)

    @defer.inlineCallbacks
    def test_checker_fault(self):
        authenticator = CredAuthenticator([BrokenChecker()], BasicRealm())
        yield self.assertFailure(
            authenticator.validate({'username': 'jane', 'password': 'secret'}),
            AuthenticationError)
        self.assertEqual(len(self.flushLoggedErrors(RuntimeError)), 1)

    @defer.inlineCallbacks
    def test_find_user(self):
        user = yield self.authenticator.find_user({'username': 'jane'})
        self.assertEqual(user.username, 'jane')
        self.assertEqual(user.attribs['email'], 'jane@example.org')
        user = yield self.authenticator.find_user({'username': ''})
        self.assertIs(user, None)

    def test_extra_attributes(self):
        self.assertEqual(
            self.authenticator.extra_attributes_to_extract(), ['email'])
