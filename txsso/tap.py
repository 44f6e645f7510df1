
# Standard library
import sys

# Application modules
from txsso.exceptions import ConfigurationError
from txsso.service import CASService
import txsso.settings

# External modules
from twisted.cred import credentials, strcred
from twisted.cred.checkers import InMemoryUsernamePasswordDatabaseDontUse
from twisted.python import usage


class Options(usage.Options, strcred.AuthOptionMixin):
    # This part is optional; it tells AuthOptionMixin what
    # kinds of credential interfaces the user can give us.
    supportedInterfaces = (credentials.IUsernamePassword,)

    optFlags = [
            ["ssl", "s", "Use SSL"],
            ["no-validate-pgturl", None, "Do not require or verify HTTPS pgtUrls (development only)."],
        ]

    optParameters = [
                        ["port", "p", None, "The port number to listen on.", int],
                        ["cert-key", "c", None, "An x509 certificate file (PEM format)."],
                        ["private-key", "k", None, "An x509 private key (PEM format)."],
                        ["realm", "r", None, "User realm to use (basic_realm, demo_realm)."],
                        ["config", None, "cas", "Configuration file basename."],
                        ["config-dir", None, "/etc/cas", "System configuration folder."],
                    ]


def endpoint_from_options(options, default):
    """
    Build an endpoint string from the --port/--ssl options, or return
    `default` if no port was given.
    """
    if options["port"] is None:
        return default
    parts = []
    if options["ssl"]:
        parts.append("ssl")
    else:
        parts.append("tcp")
    parts.append(str(options["port"]))
    certKey = options['cert-key']
    if certKey is not None:
        parts.append('certKey=%s' % certKey)
    privateKey = options['private-key']
    if privateKey is not None:
        parts.append('privateKey=%s' % privateKey)
    return ':'.join(parts)


def makeService(options):
    """
    Construct a CASService from the command line options and the
    configuration files.
    """
    try:
        config = load_config(options)
    except ConfigurationError as ex:
        raise usage.UsageError(str(ex))

    checkers = options.get("credCheckers", None)
    if not checkers:
        sys.stderr.write(
            "[WARN] No credential checker given with --auth; "
            "using a demonstration account.\n")
        checkers = [InMemoryUsernamePasswordDatabaseDontUse(foo=b'password')]
    try:
        return CASService(config, checkers)
    except ConfigurationError as ex:
        raise usage.UsageError(str(ex))


def load_config(options):
    """
    Read the configuration files named by `options` and apply the
    command line overrides.
    """
    scp = txsso.settings.load_settings(
        options['config'],
        defaults=txsso.settings.DEFAULTS,
        syspath=options['config-dir'])
    config = txsso.settings.CASConfig.fromParser(scp)
    overrides = {
        'endpoint': endpoint_from_options(options, config.endpoint),}
    if options['realm'] is not None:
        overrides['realm'] = options['realm']
    if options['no-validate-pgturl']:
        overrides['validate_pgturl'] = False
    kwds = dict(config.dump())
    kwds.update(overrides)
    return txsso.settings.CASConfig(**kwds)
