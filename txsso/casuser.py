# Application modules
from txsso.interface import ICASUser

# External modules
from zope.interface import implementer

@implementer(ICASUser)
class User(object):

    username = None
    attribs = None

    def __init__(self, username, attribs=None):
        self.username = username
        self.attribs = dict(attribs or {})

    def logout(self):
        pass
