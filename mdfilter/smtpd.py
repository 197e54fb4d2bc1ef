#
# The OpenSMTPD side: the smtpd-filters(7) line protocol spoken on
# stdin and stdout of a proc-exec filter.

import logging
from collections import namedtuple

from .consts import *
from .codec import DecodeError
from .session import Message, Session

__doc__ = """Speak the OpenSMTPD filter protocol to a Dispatcher.

smtpd sends us 'config|...' lines, then 'report|...' and 'filter|...'
events, one per line, '|' separated. We answer filter events with
'filter-result' (or, for message data, 'filter-dataline') lines that
quote the session id and token of the event.
"""
__all__ = ['Event', 'decode_event', 'encode_register', 'encode_result',
	   'encode_dataline', 'Filter']

log = logging.getLogger(__name__)

# kind is 'config', 'report' or 'filter'. For config lines name is the
# key and params holds the value, if any.
Event = namedtuple('Event', 'kind version timestamp subsystem name '
		   'session_id token params')

def decode_event(line):
	"""Decode one protocol line into an Event."""
	line = line.rstrip('\r\n')
	fields = line.split('|')
	kind = fields[0]
	if kind == 'config':
		if len(fields) < 2:
			raise DecodeError("short config line: %r" % line)
		return Event(kind, None, None, None, fields[1], None, None,
			     fields[2:])
	elif kind == 'report':
		if len(fields) < 6:
			raise DecodeError("short report line: %r" % line)
		return Event(kind, fields[1], fields[2], fields[3], fields[4],
			     fields[5], None, fields[6:])
	elif kind == 'filter':
		if len(fields) < 7:
			raise DecodeError("short filter line: %r" % line)
		params = fields[7:]
		# A data line is everything after the token, '|'s included.
		if fields[4] == 'data-line':
			params = ['|'.join(params)]
		return Event(kind, fields[1], fields[2], fields[3], fields[4],
			     fields[5], fields[6], params)
	raise DecodeError("unknown event kind: %r" % line)

def encode_register(kind, name):
	return "register|%s|%s|%s\n" % (kind, FILTER_SUBSYSTEM, name)

def encode_result(session_id, token, action, text=None):
	if text is None:
		return "filter-result|%s|%s|%s\n" % (session_id, token, action)
	return "filter-result|%s|%s|%s|%s\n" % (session_id, token, action, text)

def encode_dataline(session_id, token, line):
	return "filter-dataline|%s|%s|%s\n" % (session_id, token, line)

def param(ev, n):
	if n < len(ev.params):
		return ev.params[n]
	return None

class Filter(object):
	"""Run the filter protocol over infp/outfp, handing phases to
	dispatcher. Session state is built from report events."""
	filter_phases = ('helo', 'ehlo', 'data-line', 'commit')
	report_events = ('link-connect', 'link-identify', 'link-auth',
			 'link-disconnect', 'tx-begin', 'tx-mail', 'tx-rcpt',
			 'tx-envelope', 'tx-commit', 'tx-rollback')

	def __init__(self, dispatcher, infp, outfp):
		self.dispatcher = dispatcher
		self.infp = infp
		self.outfp = outfp
		self.sessions = {}
		self.datalines = {}
		self.config = {}

	def write(self, data):
		self.outfp.write(data)
		self.outfp.flush()

	def session(self, session_id):
		s = self.sessions.get(session_id)
		if s is None:
			s = self.sessions[session_id] = Session(session_id)
		return s

	def register(self):
		for name in self.filter_phases:
			self.write(encode_register('filter', name))
		for name in self.report_events:
			self.write(encode_register('report', name))
		self.write("register|ready\n")

	def run(self):
		"""Process events until smtpd closes our input."""
		for line in self.infp:
			self.handle(line)

	def handle(self, line):
		ev = decode_event(line)
		if ev.kind == 'config':
			if ev.name == 'ready':
				self.register()
			else:
				self.config[ev.name] = '|'.join(ev.params)
		elif ev.kind == 'report':
			self.handle_report(ev)
		else:
			self.handle_filter(ev)

	#
	# Report events only update state (and clean up).
	def handle_report(self, ev):
		s = self.session(ev.session_id)
		msg = s.message
		if ev.name == 'link-connect':
			s.hostname = param(ev, 0)
			s.src = param(ev, 2)
			s.dest = param(ev, 3)
		elif ev.name == 'link-identify':
			s.identity = param(ev, 1)
		elif ev.name == 'link-auth':
			if param(ev, 0) == 'pass':
				s.username = param(ev, 1)
		elif ev.name == 'tx-begin':
			s.message = Message(tx_id=param(ev, 0))
		elif msg is not None and ev.name in ('tx-mail', 'tx-rcpt'):
			if param(ev, 1) != 'ok':
				return
			if ev.name == 'tx-mail':
				msg.mail_from = param(ev, 2)
			else:
				msg.rcpt_to.append(param(ev, 2))
		elif msg is not None and ev.name == 'tx-envelope':
			if msg.envelope_id is None:
				msg.envelope_id = param(ev, 1)
		elif ev.name == 'tx-commit':
			s.message = None
		elif ev.name == 'tx-rollback':
			self.datalines.pop(ev.session_id, None)
			self.dispatcher.dispatch('tx-rollback', s)
		elif ev.name == 'link-disconnect':
			self.datalines.pop(ev.session_id, None)
			self.dispatcher.dispatch('link-disconnect', s)
			del self.sessions[ev.session_id]

	#
	# Filter events each get exactly one answer.
	def handle_filter(self, ev):
		s = self.session(ev.session_id)
		if ev.name == 'data-line':
			self.handle_dataline(s, ev)
			return
		if ev.name in ('helo', 'ehlo'):
			action, text = self.dispatcher.dispatch(ev.name, s,
								param(ev, 0))
		elif ev.name == 'commit':
			action, text = self.dispatcher.dispatch('commit', s)
		else:
			log.warning("unexpected filter phase %s, proceeding",
				    ev.name)
			action, text = ACT_PROCEED, None
		self.write(encode_result(ev.session_id, ev.token, action, text))

	def handle_dataline(self, s, ev):
		line = param(ev, 0) or ''
		buf = self.datalines.setdefault(ev.session_id, [])
		if line != END_OF_DATA:
			buf.append(line)
			return
		del self.datalines[ev.session_id]
		out = self.dispatcher.dispatch('data-lines', s,
					       buf + [END_OF_DATA])
		if out is None:
			out = buf
		for ln in out:
			self.write(encode_dataline(ev.session_id, ev.token, ln))
		self.write(encode_dataline(ev.session_id, ev.token,
					   END_OF_DATA))
