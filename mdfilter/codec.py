#
# Encode and decode the line formats we exchange with the scanner.
# This does not do any network conversation or file I/O; it turns
# values into protocol lines and protocol lines back into values.
#
import re
from collections import namedtuple

from .consts import *

__doc__ = """Encode and decode the MIMEDefang multiplexor protocol.

This covers the percent encoding used on every field, the COMMANDS
lines we write, the RESULTS directives the scanner writes back, and
the one-line helook and scan requests.
"""
__all__ = ["CodecError", "DecodeError",
	   "percent_encode", "percent_decode",
	   "InsertHeader", "DeleteHeader", "SetContentType", "ReplaceBody",
	   "FinalReply", "Unsupported",
	   "decode_result", "decode_results", "encode_command",
	   "encode_helook", "decode_helook", "encode_scan",
	   "header_key", "group_headers", "split_endpoint",]

# (Public) exceptions
class CodecError(Exception):
	"""General encoding or decoding failure."""
	pass
class DecodeError(CodecError):
	"""The line we are trying to decode is malformed."""
	pass

#----
# Percent encoding.
#
# The wire formats are whitespace and line delimited, so anything that
# could split a field is turned into %XX of its (UTF-8) bytes. We work
# on bytes so that a value which was not valid UTF-8 to start with
# comes back out unchanged.
pct_specials = b'%:\'"\\'
pct_decode_re = re.compile(br'%([0-9A-Fa-f]{2})')

def percent_encode(val):
	r = []
	for b in val.encode(FILE_ENCODING, FILE_ERRORS):
		if b < 0x21 or b > 0x7e or b in pct_specials:
			r.append('%%%02X' % b)
		else:
			r.append(chr(b))
	return ''.join(r)

def percent_decode(val):
	data = val.encode(FILE_ENCODING, FILE_ERRORS)
	data = pct_decode_re.sub(lambda m: bytes([int(m.group(1), 16)]), data)
	return data.decode(FILE_ENCODING, FILE_ERRORS)

#----
# RESULTS directives.
#
# Every RESULTS line decodes to exactly one of these. Positions are
# kept as the scanner wrote them (1-based, 0 for 'at the top'); turning
# them into list indexes is the applier's business.
InsertHeader = namedtuple('InsertHeader', 'key value position')
DeleteHeader = namedtuple('DeleteHeader', 'key position')
SetContentType = namedtuple('SetContentType', 'value')
ReplaceBody = namedtuple('ReplaceBody', '')
FinalReply = namedtuple('FinalReply', 'text')
Unsupported = namedtuple('Unsupported', 'kind args')

# '<key> [<pos>] [<value>]' and '<key> [<pos>]'
insert_re = re.compile(r'^(\S+)(?:\s+([0-9]+))?(?:\s+(.*))?$')
delete_re = re.compile(r'^(\S+)(?:\s+([0-9]+))?\s*$')
# MIMEDefang writes bounces and tempfails as '<text> <code> <dsn>'.
reply_re = re.compile(r'^(\S+)\s+([245][0-9][0-9])\s+([245]\.[0-9]+\.[0-9]+)$')

def decode_reply(data):
	m = reply_re.match(data)
	if m:
		return "%s %s %s" % (m.group(2), m.group(3),
				     percent_decode(m.group(1)))
	return percent_decode(data)

def decode_header_op(op, data):
	m = insert_re.match(data)
	if not m:
		raise DecodeError("bad header directive: %s%s" % (op, data))
	return InsertHeader(percent_decode(m.group(1)),
			    percent_decode(m.group(3) or ''),
			    int(m.group(2) or 0))

def decode_delete_op(op, data):
	m = delete_re.match(data)
	if not m:
		raise DecodeError("bad header directive: %s%s" % (op, data))
	return DeleteHeader(percent_decode(m.group(1)), int(m.group(2) or 0))

def decode_ctype_op(op, data):
	return SetContentType(percent_decode(data.strip()))

def decode_newbody_op(op, data):
	return ReplaceBody()

def decode_reply_op(op, data):
	return FinalReply(decode_reply(data.strip()))

result_decoders = {
	RES_INSHEADER: decode_header_op,
	RES_CHGHEADER: decode_header_op,
	RES_DELHEADER: decode_delete_op,
	RES_CTYPE: decode_ctype_op,
	RES_NEWBODY: decode_newbody_op,
	RES_BOUNCE: decode_reply_op,
	RES_TEMPFAIL: decode_reply_op,
	}

def decode_result(line):
	"""Decode one RESULTS line into a directive.

	Returns None for lines we do not recognize at all (including blank
	lines). Raises DecodeError for a recognized opcode whose arguments
	cannot be parsed."""
	line = line.rstrip('\r\n')
	if not line:
		return None
	op, data = line[0], line[1:].lstrip()
	if op in unsupported_results:
		return Unsupported(unsupported_results[op], data)
	if op not in result_decoders:
		return None
	return result_decoders[op](op, data)

def decode_results(lines):
	"""Decode a RESULTS stream into a list of directives, in the order
	the scanner wrote them. Unrecognized and malformed lines are
	skipped."""
	r = []
	for line in lines:
		try:
			d = decode_result(line)
		except DecodeError:
			continue
		if d is not None:
			r.append(d)
	return r

#----
# COMMANDS lines.
#
# Single-letter opcodes are glued to their (encoded) value; '=macro'
# opcodes are separated from theirs by a space.
def encode_command(op, *vals):
	data = ' '.join(percent_encode(v) for v in vals)
	if op.startswith('='):
		return "%s %s\n" % (op, data)
	return "%s%s\n" % (op, data)

#----
# The helook and scan requests are single lines.
def encode_helook(srcaddr, hostname, identity, srcport, destaddr, destport):
	return "helook %s %s %s %s %s %s\n" % (
		percent_encode(srcaddr), percent_encode(hostname or ''),
		percent_encode(identity or ''), srcport,
		percent_encode(destaddr), destport)

helook_re = re.compile(r'ok\s+([0-9-]+)\s*(.*)')

def decode_helook(data):
	"""Decode a helook reply into (code, text). Returns None if the
	reply is not in the 'ok <code> <text>' form at all."""
	m = helook_re.search(data)
	if not m:
		return None
	try:
		code = int(m.group(1))
	except ValueError:
		return None
	return (code, percent_decode(m.group(2).strip()))

def encode_scan(msgid, spooldir):
	return "scan %s %s\n" % (msgid, spooldir)

#----
# Header lines.
def header_key(line):
	"""Return the field name of a header line, or the whole line
	if it has no colon."""
	return line.split(':', 1)[0].rstrip()

def is_continuation(line):
	return line[:1] in (' ', '\t')

def group_headers(lines):
	"""Group raw header lines into logical headers: a list of lists,
	each starting with the 'Name: value' line and followed by its
	continuation lines."""
	r = []
	for ln in lines:
		if r and is_continuation(ln):
			r[-1].append(ln)
		else:
			r.append([ln])
	return r

def header_value(group):
	"""Return the unfolded value of a grouped header."""
	first = group[0].split(':', 1)
	parts = [first[1] if len(first) == 2 else '']
	parts.extend(group[1:])
	return ' '.join(p.strip() for p in parts).strip()

#----
# Endpoints come to us as 'addr:port', '[v6addr]:port' or (for
# local connections) a socket path.
def split_endpoint(ep):
	"""Split an endpoint into (address, port). The port is '' when
	there is none. Brackets (and an 'IPv6:' tag) are removed from
	IPv6 addresses."""
	if not ep:
		return ('', '')
	if ep.startswith('['):
		addr, _, rest = ep[1:].partition(']')
		if addr[:5].lower() == 'ipv6:':
			addr = addr[5:]
		return (addr, rest[1:] if rest.startswith(':') else '')
	if ep.startswith('unix:') or ep.startswith('/') or ep.count(':') != 1:
		return (ep, '')
	addr, _, port = ep.partition(':')
	return (addr, port)
