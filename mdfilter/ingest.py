#
# Turn the DATA lines of a message into the spool files the scanner
# reads: HEADERS, INPUTMSG and COMMANDS.

import logging
import os

from .consts import *
from . import codec

__doc__ = """Write a message and its description into its spool directory.

The lines we are given are exactly what the MTA hands a filter: still
dot-escaped, and usually ending with the '.' end-of-data marker.
"""
__all__ = ['IngestError', 'split_message', 'read_headers',
	   'write_inputmsg', 'write_commands', 'ingest']

log = logging.getLogger(__name__)

class IngestError(Exception):
	"""The message cannot be handed to the scanner."""
	pass

def spool_file(dname, fname, mode='w'):
	return open(os.path.join(dname, fname), mode,
		    encoding=FILE_ENCODING, errors=FILE_ERRORS)

def strip_eod(lines):
	"""Return lines without a trailing end-of-data marker."""
	if lines and lines[-1] == END_OF_DATA:
		return lines[:-1]
	return list(lines)

def split_message(lines):
	"""Split message lines into (headers, body). The body starts with
	the blank line that ends the headers. Raises IngestError if there
	is no header block."""
	try:
		sep = lines.index('')
	except ValueError:
		raise IngestError("no end of headers found")
	if sep == 0:
		raise IngestError("empty header block")
	return lines[:sep], lines[sep:]

def read_headers(dname, headers):
	"""Write headers verbatim to HEADERS in dname. Returns a dict of
	the unfolded values of the first Subject: and Message-ID: headers
	(keyed by lower-cased name) that we found."""
	found = {}
	with spool_file(dname, SPOOL_HEADERS) as fp:
		for ln in headers:
			fp.write(ln + '\n')
	for grp in codec.group_headers(headers):
		key = codec.header_key(grp[0]).lower()
		if key in ('subject', 'message-id') and key not in found:
			found[key] = codec.header_value(grp)
	return found

def unescape_dot(line):
	if line.startswith('.') and len(line) > 1:
		return line[1:]
	return line

def write_inputmsg(dname, lines):
	"""Write the whole message, un-dot-escaped, to INPUTMSG."""
	with spool_file(dname, SPOOL_INPUTMSG) as fp:
		for ln in lines:
			fp.write(unescape_dot(ln) + '\n')

def write_commands(dname, session, message, subject=None):
	"""Describe the message to the scanner in COMMANDS."""
	sender = '<%s>' % (message.mail_from or '')
	identity = session.identity or ''
	cmds = [codec.encode_command(CMD_SENDER, sender),
		codec.encode_command(CMD_MAIL_ADDR, sender),
		codec.encode_command(CMD_MSGID,
				     message.message_id or message.tx_id or ''),
		codec.encode_command(CMD_QUEUEID, message.id),
		codec.encode_command(CMD_HELO, identity),
		codec.encode_command(CMD_EHLO, identity),
		codec.encode_command(CMD_MAIL_HOST, identity + '.'),
		]
	if session.username:
		cmds.append(codec.encode_command(CMD_AUTHEN, session.username))
	if subject is not None:
		cmds.append(codec.encode_command(CMD_SUBJECT, subject))
	relay = codec.split_endpoint(session.src)[0]
	if relay:
		cmds.append(codec.encode_command(CMD_RELAYIP, relay))
	if message.mx_id:
		cmds.append(codec.encode_command(CMD_MXID, message.mx_id))
	if message.rcpt_to:
		# Only the first recipient. The mailer, host and address
		# fields are filled in by sendmail's milter, not by us.
		cmds.append("%s%s ? ? ?\n" % (CMD_RCPT,
					     codec.percent_encode(message.rcpt_to[0])))
	cmds.append(CMD_END + '\n')
	with spool_file(dname, SPOOL_COMMANDS) as fp:
		fp.write(''.join(cmds))

def ingest(session, message, lines, spool):
	"""Capture a message into a new spool directory for its id.

	Sets message.spool_dir, message.headers and message.message_id.
	Returns (headers, body), both lists of the original (escaped)
	lines. Raises IngestError for a message without headers and
	OSError (or ValueError, for a message without an id) if the spool
	directory cannot be set up."""
	lines = strip_eod(lines)
	headers, body = split_message(lines)
	message.spool_dir = spool.open(message.id)
	found = read_headers(message.spool_dir, headers)
	message.headers = headers
	if 'message-id' in found:
		message.message_id = found['message-id']
	write_inputmsg(message.spool_dir, lines)
	write_commands(message.spool_dir, session, message,
		       found.get('subject'))
	log.debug("message %s spooled in %s", message.id, message.spool_dir)
	return headers, body
