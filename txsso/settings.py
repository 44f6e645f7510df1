
# Standard library
import configparser
import os.path

# Application modules
from txsso.exceptions import ConfigurationError

DEFAULTS = {
    'CAS': {
        'lt_lifespan': 300,
        'st_lifespan': 10,
        'pt_lifespan': 10,
        'tgt_lifespan': 60 * 60 * 24 * 2,
        'pgt_lifespan': 60 * 60 * 2,
        'ticket_size': 128,
        'validate_pgturl': 1,
        'pgt_callback_timeout': 30,
        'cookie_name': 'tgc',
        'require_ssl': 1,
        'reap_interval': 60,
        'endpoint': 'tcp:9800',
    },
    'PLUGINS': {
        'realm': 'basic_realm',
        'extra_attributes': '',
    },
}

# Room for a prefix plus 22 characters from a 63 symbol alphabet (> 128 bits).
MIN_TICKET_SIZE = 32


def load_defaults(defaults):
    """
    Load default settings.
    """
    scp = configparser.ConfigParser(interpolation=None)
    for section, opts in defaults.items():
        scp.add_section(section)
        for opt, value in opts.items():
            scp.set(section, opt, str(value))
    return scp

def load_settings(config_basename, defaults=None, syspath=None):
    """
    Load settings.
    Later files override earlier ones: the application directory, then
    the user's home directory, then `syspath`.
    """
    if defaults is None:
        defaults = {}
    scp = load_defaults(defaults)
    appdir = os.path.dirname(os.path.dirname(__file__))
    paths = []
    paths.append(os.path.join(appdir, "%s.cfg" % config_basename))
    paths.append(os.path.expanduser("~/.%src" % config_basename))
    if syspath is not None:
        paths.append(os.path.join(syspath, "%s.cfg" % config_basename))
    scp.read(paths)
    return scp

def get_int_opt(scp, section, option):
    try:
        return scp.getint(section, option)
    except ValueError:
        raise ConfigurationError(
            "Configuration [%s] %s must be an integer." % (section, option))

def get_bool_opt(scp, section, option):
    try:
        return scp.getboolean(section, option)
    except ValueError:
        raise ConfigurationError(
            "Configuration [%s] %s must be a boolean value (e.g. 1, 0)." % (
                section, option))

def split_list(value):
    return [x.strip() for x in value.split(',') if x.strip() != '']


class CASConfig(object):
    """
    Settings shared by the CAS components.  Built once at start-up and
    passed to whatever needs it.
    """
    lt_lifespan = DEFAULTS['CAS']['lt_lifespan']
    st_lifespan = DEFAULTS['CAS']['st_lifespan']
    pt_lifespan = DEFAULTS['CAS']['pt_lifespan']
    tgt_lifespan = DEFAULTS['CAS']['tgt_lifespan']
    pgt_lifespan = DEFAULTS['CAS']['pgt_lifespan']
    ticket_size = DEFAULTS['CAS']['ticket_size']
    validate_pgturl = True
    pgt_callback_timeout = DEFAULTS['CAS']['pgt_callback_timeout']
    cookie_name = DEFAULTS['CAS']['cookie_name']
    require_ssl = True
    reap_interval = DEFAULTS['CAS']['reap_interval']
    endpoint = DEFAULTS['CAS']['endpoint']
    realm = DEFAULTS['PLUGINS']['realm']
    extra_attributes = ()

    _int_opts = (
        'lt_lifespan', 'st_lifespan', 'pt_lifespan', 'tgt_lifespan',
        'pgt_lifespan', 'ticket_size', 'pgt_callback_timeout',
        'reap_interval')
    _bool_opts = ('validate_pgturl', 'require_ssl')

    def __init__(self, **kwds):
        for key, value in kwds.items():
            if not hasattr(self.__class__, key) or key.startswith('_'):
                raise ConfigurationError("Unknown setting '%s'." % key)
            setattr(self, key, value)
        self.extra_attributes = tuple(self.extra_attributes)
        self.check()

    @classmethod
    def fromParser(cls, scp):
        kwds = {}
        for opt in cls._int_opts:
            if scp.has_option('CAS', opt):
                kwds[opt] = get_int_opt(scp, 'CAS', opt)
        for opt in cls._bool_opts:
            if scp.has_option('CAS', opt):
                kwds[opt] = get_bool_opt(scp, 'CAS', opt)
        for opt in ('cookie_name', 'endpoint'):
            if scp.has_option('CAS', opt):
                kwds[opt] = scp.get('CAS', opt)
        if scp.has_option('PLUGINS', 'realm'):
            kwds['realm'] = scp.get('PLUGINS', 'realm')
        if scp.has_option('PLUGINS', 'extra_attributes'):
            kwds['extra_attributes'] = split_list(
                scp.get('PLUGINS', 'extra_attributes'))
        return cls(**kwds)

    def check(self):
        if self.ticket_size < MIN_TICKET_SIZE:
            raise ConfigurationError(
                "ticket_size must be at least %d." % MIN_TICKET_SIZE)
        for opt in self._int_opts:
            if getattr(self, opt) <= 0:
                raise ConfigurationError("%s must be positive." % opt)
        if self.cookie_name == '':
            raise ConfigurationError("cookie_name must not be empty.")

    def dump(self):
        """
        Return the settings as sorted (name, value) pairs.
        """
        names = list(self._int_opts) + list(self._bool_opts) + [
            'cookie_name', 'endpoint', 'realm', 'extra_attributes']
        return [(name, getattr(self, name)) for name in sorted(names)]


def load_config(config_basename='cas', syspath='/etc/cas'):
    """
    Read the configuration files and build a `CASConfig`.
    """
    scp = load_settings(config_basename, defaults=DEFAULTS, syspath=syspath)
    return CASConfig.fromParser(scp)
