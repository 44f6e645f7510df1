
# External modules
from twisted.application.service import ServiceMaker


# The name of this variable is irrelevant, as long as there is *some*
# name bound to a provider of IPlugin and IServiceMaker.
serviceMaker = ServiceMaker(
    "txsso",
    "txsso.tap",
    "A CAS single sign-on server.",
    "cas")
