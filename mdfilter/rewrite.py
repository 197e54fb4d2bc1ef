#
# Apply the scanner's RESULTS directives to a captured message and
# build the lines that replace it.

import logging
import os

from .consts import *
from . import codec

__doc__ = """Rewrite a message according to the scanner's directives.

Header edits work on a separate list of 'touched' headers: every
captured header whose name appears in an insert or delete directive
starts out in that list, in its original order, and the directives are
then applied to the list one after another. Headers that no directive
names are carried over untouched. Positions in directives are 1-based;
we turn them into 0-based list indexes here and nowhere else.
"""
__all__ = ['Edits', 'apply_directives', 'read_results', 'read_newbody',
	   'assemble', 'rewrite']

log = logging.getLogger(__name__)

class Edits(object):
	"""What a RESULTS stream asks us to do to one message.

	spliced is the working list of touched headers, as lists of
	lines (a header and its continuation lines). touched is the
	set of lower-cased header names that insert or delete
	directives named."""
	def __init__(self):
		self.spliced = []
		self.touched = set()
		self.content_type = None
		self.new_body = False
		self.reply = None
		self.unsupported = []

def splice_index(position):
	# 0 (or nothing) is the top; N is 'before the current Nth'.
	if position > 0:
		return position - 1
	return 0

def delete_nth(groups, key, position):
	key = key.lower()
	count = 0
	for i, grp in enumerate(groups):
		if codec.header_key(grp[0]).lower() == key:
			count += 1
			if count == position:
				del groups[i]
				return True
	return False

def apply_directives(headers, directives):
	"""Apply a list of directives to the captured header lines and
	return an Edits. headers itself is never modified."""
	ed = Edits()
	for d in directives:
		if isinstance(d, (codec.InsertHeader, codec.DeleteHeader)):
			ed.touched.add(d.key.lower())
	ed.spliced = [list(g) for g in codec.group_headers(headers)
		      if codec.header_key(g[0]).lower() in ed.touched]

	for d in directives:
		if isinstance(d, codec.InsertHeader):
			hdr = ("%s: %s" % (d.key, d.value)).split('\n')
			ed.spliced.insert(splice_index(d.position), hdr)
		elif isinstance(d, codec.DeleteHeader):
			if not delete_nth(ed.spliced, d.key, d.position):
				log.debug("no header %s number %d to delete",
					  d.key, d.position)
		elif isinstance(d, codec.SetContentType):
			ed.content_type = d.value
		elif isinstance(d, codec.ReplaceBody):
			ed.new_body = True
		elif isinstance(d, codec.FinalReply):
			# The first real reply wins.
			if d.text and ed.reply is None:
				ed.reply = d.text
		elif isinstance(d, codec.Unsupported):
			log.warning("%s request unsupported, email processing "
				    "will continue", d.kind)
			ed.unsupported.append(d.kind)
		else:
			raise TypeError("unknown directive %r" % (d,))
	return ed

def read_results(dname):
	"""Read and decode RESULTS from dname."""
	with open(os.path.join(dname, SPOOL_RESULTS),
		  encoding=FILE_ENCODING, errors=FILE_ERRORS) as fp:
		return codec.decode_results(fp)

def escape_dot(line):
	if line.startswith('.'):
		return '.' + line
	return line

def read_newbody(dname):
	"""Return the lines of NEWBODY in dname, dot-escaped for the
	MTA, or None if there is no such file. Other failures to read
	it raise OSError."""
	fname = os.path.join(dname, SPOOL_NEWBODY)
	try:
		fp = open(fname, encoding=FILE_ENCODING, errors=FILE_ERRORS)
	except FileNotFoundError:
		return None
	with fp:
		return [escape_dot(ln.rstrip('\r\n')) for ln in fp]

def assemble(headers, body, edits, newbody=None, scanned_by=None):
	"""Build the final message lines.

	headers is the captured header lines, body the original body
	starting with its blank separator line. newbody, if not None,
	replaces the body when the scanner asked for that. scanned_by,
	if set, is the value of an X-Scanned-By: header to append."""
	ctype = edits.content_type
	kept = []
	have_mime = False
	for grp in codec.group_headers(headers):
		key = codec.header_key(grp[0]).lower()
		if ctype is not None and key == 'content-type':
			continue
		if key in edits.touched:
			continue
		kept.extend(grp)
	spliced = [ln for grp in edits.spliced for ln in grp
		   if ctype is None or
		   codec.header_key(grp[0]).lower() != 'content-type']

	if ctype is not None:
		have_mime = any(codec.header_key(ln).lower() == 'mime-version'
				for ln in spliced + kept
				if not codec.is_continuation(ln))
		spliced.append("Content-Type: %s" % ctype)
		if not have_mime:
			kept.append("MIME-Version: 1.0")

	out = spliced + kept
	if scanned_by:
		out.append("X-Scanned-By: %s" % scanned_by)
	if edits.new_body and newbody is not None:
		out.append('')
		out.extend(newbody)
	else:
		out.extend(body)
	return out

def rewrite(message, body, edits, cfg, dest=None):
	"""Produce the replacement lines for message, whose RESULTS have
	already been applied into edits."""
	newbody = None
	if edits.new_body:
		try:
			newbody = read_newbody(message.spool_dir)
		except OSError as e:
			log.warning("message %s: cannot read %s, keeping the "
				    "original body: %s", message.id,
				    SPOOL_NEWBODY, e)
		else:
			if newbody is None:
				log.warning("message %s: new body requested "
					    "but no %s", message.id,
					    SPOOL_NEWBODY)
	scanned_by = None
	if cfg.scanned_by:
		scanner = cfg.scanner_name
		if cfg.scanner_version:
			scanner = "%s %s" % (scanner, cfg.scanner_version)
		scanned_by = "%s on %s" % (scanner,
					   codec.split_endpoint(dest)[0])
	return assemble(message.headers, body, edits, newbody, scanned_by)
