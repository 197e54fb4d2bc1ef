#
# Support for having a conversation with the MIMEDefang multiplexor
# over its unix socket. Every conversation is one request line and
# one reply: connect, send, half-close, read, half-close, close.

import logging
import socket

from .consts import *
from . import codec

__doc__ = """Support for talking to the scanner across a socket"""
__all__ = ['ScannerError', 'Scanner', 'unix_connect']

log = logging.getLogger(__name__)

class ScannerError(Exception):
	"""Raised on every failure to complete a scanner conversation."""
	pass

def unix_connect(path, timeout=None):
	"""Open a stream connection to the unix socket at path."""
	sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
	try:
		sock.settimeout(timeout)
		sock.connect(path)
	except Exception:
		sock.close()
		raise
	return sock

class Scanner(object):
	"""The scanner at the other end of a unix socket. sock_creator
	is called with (path, timeout) and must return something with
	.sendall(), .shutdown(), .recv() and .close(); it exists so
	that tests can supply fake sockets."""
	def __init__(self, path, timeout=None, blksize=1024,
		     maxsize=64*1024, sock_creator=None):
		self.path = path
		self.timeout = timeout
		self.blksize = blksize
		self.maxsize = maxsize
		self.sock_creator = sock_creator or unix_connect

	@classmethod
	def from_config(cls, cfg, sock_creator=None):
		return cls(cfg.socket_path, timeout=cfg.timeout,
			   blksize=cfg.recv_size, maxsize=cfg.max_reply,
			   sock_creator=sock_creator)

	def recv_reply(self, sock):
		"""Read the reply until the scanner closes its side or we
		have maxsize bytes. A reply longer than that is cut off,
		which we log."""
		buf = b''
		while len(buf) < self.maxsize:
			data = sock.recv(self.blksize)
			if not data:
				break
			buf += data
		if len(buf) >= self.maxsize:
			log.warning("scanner reply truncated at %d bytes",
				    self.maxsize)
			buf = buf[:self.maxsize]
		return buf.decode(FILE_ENCODING, FILE_ERRORS)

	def converse(self, request):
		"""Send one request line and return the reply as a string.
		Raises ScannerError if any step fails."""
		sock = None
		try:
			sock = self.sock_creator(self.path, self.timeout)
			log.debug("scanner request: %r", request)
			sock.sendall(request.encode(FILE_ENCODING, FILE_ERRORS))
			sock.shutdown(socket.SHUT_WR)
			reply = self.recv_reply(sock)
			sock.shutdown(socket.SHUT_RD)
		except (OSError, ValueError) as e:
			raise ScannerError("scanner conversation failed: %s" % e)
		finally:
			if sock is not None:
				sock.close()
		log.debug("scanner reply: %r", reply)
		return reply

	def helo_check(self, src, hostname, identity, dest):
		"""Ask the scanner whether to accept a HELO/EHLO identity.
		src and dest are 'addr:port' endpoints. Returns one of
		HELO_PROCEED, HELO_TEMPFAIL or HELO_REJECT.

		Any failure to talk to the scanner is a temporary failure;
		a reply we cannot understand, or a code we do not know,
		lets the client proceed."""
		srcaddr, srcport = codec.split_endpoint(src)
		destaddr, destport = codec.split_endpoint(dest)
		log.info("checking helo %s", identity)
		req = codec.encode_helook(srcaddr, hostname, identity, srcport,
					  destaddr, destport)
		try:
			reply = self.converse(req)
		except ScannerError as e:
			log.warning("helo check for %s: %s", identity, e)
			return HELO_TEMPFAIL
		r = codec.decode_helook(reply)
		if r is None:
			log.warning("unparsable helo check reply %r, proceeding",
				    reply)
			return HELO_PROCEED
		code, text = r
		if code == HELO_CODE_TEMPFAIL:
			return HELO_TEMPFAIL
		elif code == HELO_CODE_REJECT:
			log.info("helo %s rejected: %s", identity, text)
			return HELO_REJECT
		elif code != HELO_CODE_ACCEPT:
			log.warning("unknown helo check code %d, proceeding", code)
		return HELO_PROCEED

	def scan(self, msgid, spooldir):
		"""Ask the scanner to scan the message in spooldir. Returns
		the scanner's status line (eg 'ok', 'temp_error'). Raises
		ScannerError if the conversation fails."""
		log.info("checking message %s", msgid)
		reply = self.converse(codec.encode_scan(msgid, spooldir))
		return reply.strip()
