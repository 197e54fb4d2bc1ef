#
# Per-message work directories shared with the scanner.

import logging
import os
import shutil

from .consts import SPOOL_PREFIX

__doc__ = """Manage the per-message spool directories.

Each message gets <root>/mdefang-<id>/, which we fill with HEADERS,
INPUTMSG and COMMANDS and the scanner fills with RESULTS (and maybe
NEWBODY). A directory belongs to exactly one message.
"""
__all__ = ['Spool']

log = logging.getLogger(__name__)

class Spool(object):
	"""A spool root. If keep is true, directories are never removed
	(this is the debug mode of the filter)."""
	def __init__(self, root, keep=False):
		self.root = root
		self.keep = keep

	def path(self, msgid):
		"""Return the directory name for msgid. Raises ValueError if
		msgid cannot name a directory."""
		if not msgid or '/' in msgid or msgid in ('.', '..'):
			raise ValueError("no usable message id: %r" % (msgid,))
		return os.path.join(self.root, SPOOL_PREFIX + msgid)

	def open(self, msgid):
		"""Create the directory for msgid and return its path.
		Every failure is raised to the caller, including finding
		the directory already there: what is in it belongs to
		something else."""
		dname = self.path(msgid)
		os.mkdir(dname, 0o750)
		return dname

	def remove(self, msgid):
		"""Remove the directory for msgid and everything in it.
		Removing something that is not there is not an error, and
		nothing here ever raises."""
		if self.keep:
			log.debug("keeping spool directory for %s", msgid)
			return
		try:
			dname = self.path(msgid)
		except ValueError:
			return
		shutil.rmtree(dname, ignore_errors=True)
