import json
import logging
import os

"""
Configuration files for :func:`davkit.davclient.get_davclient`.

A configuration file is a JSON (or, with PyYAML installed, YAML)
object with one object per section.  A section may name another
section in ``inherits`` to take over its keys.  Example::

    {
        "default": {"davkit_url": "https://dav.example.com/", "davkit_user": "jane"},
        "work": {"inherits": "default", "davkit_url": "https://dav.work.example.com/"}
    }
"""

log = logging.getLogger(__name__)


def config_section(config, section="default", _seen=None):
    """The keys of ``section``, including inherited ones"""
    if _seen is None:
        _seen = set()
    _seen.add(section)
    parent = config.get(section, {}).get("inherits")
    if parent and parent not in _seen:
        ret = config_section(config, parent, _seen)
    else:
        if parent:
            log.error(f"config section {section} inherits from itself, ignoring that")
        ret = {}
    if section in config:
        ret.update(config[section])
    ret.pop("inherits", None)
    return ret


def default_config_files():
    cfgdir = f"{os.environ.get('HOME', '/')}/.config"
    return (
        f"{cfgdir}/davkit/davkit.conf",
        f"{cfgdir}/davkit/davkit.yaml",
        f"{cfgdir}/davkit/davkit.json",
        "/etc/davkit/davkit.conf",
    )


def read_config(fn):
    """
    Loads the config file ``fn``, or the first existing one of the
    default locations.  Returns an empty dict (or None, if no file was
    given and none exists) when nothing usable was found.
    """
    if not fn:
        for config_file in default_config_files():
            cfg = read_config(config_file)
            if cfg:
                return cfg
        return None

    try:
        try:
            with open(fn, "rb") as config_file:
                return json.load(config_file)
        except json.decoder.JSONDecodeError:
            ## Late import, yaml is an optional dependency
            try:
                import yaml
            except ImportError:
                log.error(
                    f"config file {fn} exists but is not valid json, and pyyaml is not installed."
                )
                return {}
            try:
                with open(fn, "rb") as config_file:
                    return yaml.safe_load(config_file) or {}
            except yaml.YAMLError:
                log.error(
                    f"config file {fn} exists but is neither valid json nor yaml.  Check the syntax."
                )
    except FileNotFoundError:
        log.debug(f"no config file {fn}")
    except ValueError:
        log.error(f"error in config file {fn}.  It will be ignored", exc_info=True)
    return {}
