#
# Route the MTA's filter phases to the pieces that handle them.

import logging

from .consts import *
from . import ingest, rewrite, verdict
from .convo import Scanner, ScannerError
from .session import Message
from .spool import Spool

__doc__ = """Map filter phases to their handlers.

Control phases (helo, ehlo, commit) return an (action, text) tuple;
text is None for ACT_PROCEED. The data-lines phase returns the
replacement message lines, or None to leave the message alone.
Teardown phases return None.
"""
__all__ = ['DispatchError', 'Dispatcher']

log = logging.getLogger(__name__)

class DispatchError(Exception):
	"""Raised for a phase we have no handler for."""
	pass

helo_verdicts = {
	HELO_PROCEED: (ACT_PROCEED, None),
	HELO_TEMPFAIL: (ACT_REJECT, REPLY_TEMPFAIL),
	HELO_REJECT: (ACT_REJECT, REPLY_HELO_REJECT),
	}

class Dispatcher(object):
	"""Handle filter phases for sessions, given a Config. The spool
	and scanner are built from the config unless supplied."""
	def __init__(self, cfg, spool=None, scanner=None):
		self.cfg = cfg
		self.spool = spool or Spool(cfg.spool_dir, keep=cfg.debug)
		self.scanner = scanner or Scanner.from_config(cfg)
		self.handlers = {
			'helo': self.helo,
			'ehlo': self.helo,
			'data-lines': self.data_lines,
			'commit': self.commit,
			'tx-rollback': self.rollback,
			'link-disconnect': self.disconnect,
			}

	def phases(self):
		return sorted(self.handlers)

	def dispatch(self, phase, session, *args):
		try:
			handler = self.handlers[phase]
		except KeyError:
			raise DispatchError("no handler for phase: %s" % phase)
		session.phase = phase
		return handler(session, *args)

	def cleanup(self, message):
		if message is not None and message.spool_dir is not None:
			self.spool.remove(message.id)

	def helo(self, session, identity):
		session.identity = identity
		if not self.cfg.helo_check:
			return (ACT_PROCEED, None)
		r = self.scanner.helo_check(session.src, session.hostname,
					    identity, session.dest)
		return helo_verdicts[r]

	def data_lines(self, session, lines):
		"""Spool the message, have it scanned and return its
		rewritten lines. Every failure leaves a status (or the lack
		of one) for commit to act on and returns None."""
		msg = session.message
		if msg is None:
			msg = session.message = Message()
		try:
			headers, body = ingest.ingest(session, msg, lines,
						      self.spool)
		except (ingest.IngestError, OSError, ValueError) as e:
			log.warning("message %s not scanned: %s", msg.id, e)
			msg.status = STATUS_TEMPERROR
			return None

		try:
			msg.status = self.scanner.scan(msg.id, msg.spool_dir)
		except ScannerError as e:
			log.warning("message %s: %s", msg.id, e)
			return None

		try:
			directives = rewrite.read_results(msg.spool_dir)
		except OSError as e:
			log.warning("message %s: cannot read results: %s",
				    msg.id, e)
			return None
		edits = rewrite.apply_directives(headers, directives)
		msg.reply = edits.reply
		msg.content_type = edits.content_type
		return rewrite.rewrite(msg, body, edits, self.cfg, session.dest)

	def commit(self, session):
		msg = session.message
		r = verdict.resolve(msg)
		self.cleanup(msg)
		return r

	def rollback(self, session):
		self.cleanup(session.message)
		session.message = None

	def disconnect(self, session):
		self.cleanup(session.message)
		session.message = None
