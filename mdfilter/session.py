#
# The state we keep for a connection and for the mail transaction
# running on it.

import uuid

__all__ = ['Session', 'Message', 'gen_mx_id']

def gen_mx_id():
	"""Generate a secondary id for a message. It is also the message's
	id when the MTA never told us an envelope id."""
	return uuid.uuid4().hex[:14].upper()

class Message(object):
	"""One mail transaction.

	status is None until the scanner has answered; after that it is
	the scanner's status line, or 'temp_error' when we gave up on the
	message ourselves. reply is the final reply text the scanner asked
	for, if any."""
	def __init__(self, tx_id=None, envelope_id=None):
		self.tx_id = tx_id
		self.envelope_id = envelope_id
		self.mx_id = gen_mx_id()
		self.mail_from = None
		self.rcpt_to = []
		self.message_id = None
		self.spool_dir = None
		self.status = None
		self.reply = None
		self.headers = []
		self.content_type = None

	@property
	def id(self):
		return self.envelope_id or self.mx_id

	def __repr__(self):
		return "<Message %s status=%r>" % (self.id, self.status)

class Session(object):
	"""One SMTP connection. src and dest are 'address:port' strings
	as the MTA reports them."""
	def __init__(self, session_id=None, src=None, dest=None):
		self.session_id = session_id
		self.src = src
		self.dest = dest
		self.hostname = None
		self.identity = None
		self.username = None
		self.phase = None
		self.message = None

	def __repr__(self):
		return "<Session %s %s>" % (self.session_id, self.src)
