#
# The filter's configuration. It is built once at startup and handed
# to everything that needs it; nothing changes it afterwards.

from collections import namedtuple

from .consts import MDSPOOL_PATH, SOCK_PATH

__all__ = ['Config', 'make_config', 'DEFAULTS']

DEFAULTS = (
	('spool_dir', MDSPOOL_PATH),
	('socket_path', SOCK_PATH),
	# keep spool directories around and log more
	('debug', False),
	# ask the scanner about HELO/EHLO names
	('helo_check', False),
	# add an X-Scanned-By: header to every message
	('scanned_by', True),
	('scanner_name', 'MIMEDefang'),
	# MIMEDefang release named after scanner_name, if known
	('scanner_version', None),
	# None means block forever, as the multiplexor protocol expects
	('timeout', None),
	('recv_size', 1024),
	('max_reply', 64*1024),
	)

Config = namedtuple('Config', [name for name, _ in DEFAULTS])

def make_config(**overrides):
	"""Return a Config with the defaults replaced by overrides.
	Raises TypeError on an unknown setting."""
	unknown = set(overrides) - set(Config._fields)
	if unknown:
		raise TypeError("unknown configuration settings: %s" %
				", ".join(sorted(unknown)))
	vals = dict(DEFAULTS)
	vals.update(overrides)
	return Config(**vals)
