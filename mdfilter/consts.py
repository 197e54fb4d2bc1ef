#
# Constants for the scanner (MIMEDefang multiplexor) protocol and for
# the OpenSMTPD filter protocol we sit behind.

# Where the multiplexor expects its work directories and where it
# listens.
MDSPOOL_PATH = '/var/spool/MIMEDefang'
SOCK_PATH = '/var/spool/MIMEDefang/mimedefang-multiplexor.sock'
SPOOL_PREFIX = 'mdefang-'

# Files inside a per-message spool directory.
SPOOL_HEADERS  = 'HEADERS'  # captured header block (ours)
SPOOL_INPUTMSG = 'INPUTMSG' # raw message for the scanner (ours)
SPOOL_COMMANDS = 'COMMANDS' # message description (ours)
SPOOL_RESULTS  = 'RESULTS'  # edit directives (scanner's)
SPOOL_NEWBODY  = 'NEWBODY'  # replacement body (scanner's)

# Everything we put on disk or read back is text; bytes that are not
# UTF-8 survive the round trip.
FILE_ENCODING = 'utf-8'
FILE_ERRORS = 'surrogateescape'

# COMMANDS opcodes, written by us and read by the scanner.
CMD_SENDER    = 'S'
CMD_MAIL_ADDR = '=mail_addr'
CMD_MSGID     = 'X'
CMD_QUEUEID   = 'Q'
CMD_HELO      = 'H'
CMD_EHLO      = 'E'
CMD_MAIL_HOST = '=mail_host'
CMD_AUTHEN    = '=auth_authen'
CMD_SUBJECT   = 'U'
CMD_RELAYIP   = 'I'
CMD_MXID      = 'i'
CMD_RCPT      = 'R'
CMD_END       = 'F'

# RESULTS opcodes, written by the scanner and read by us.
RES_INSHEADER  = 'I' # insert header at position
RES_CHGHEADER  = 'N' # treated exactly like RES_INSHEADER
RES_DELHEADER  = 'J' # delete Nth occurrence of header
RES_CTYPE      = 'M' # replace the top-level Content-Type
RES_NEWBODY    = 'C' # NEWBODY holds a replacement body
RES_BOUNCE     = 'B' # final reply text (bounce)
RES_TEMPFAIL   = 'T' # final reply text (tempfail)
RES_DISCARD    = 'D'
RES_QUARANTINE = 'Q'
RES_ADDRCPT    = 'R'
RES_DELRCPT    = 'S'
RES_CHGSENDER  = 'f'

# Things the scanner may ask for that the filter protocol cannot do.
unsupported_results = {
	RES_DISCARD: 'discard',
	RES_QUARANTINE: 'quarantine',
	RES_ADDRCPT: 'add-recipient',
	RES_DELRCPT: 'remove-recipient',
	RES_CHGSENDER: 'change-sender',
	}

# Scan status words the multiplexor answers with.
STATUS_OK        = 'ok'
STATUS_TEMPERROR = 'temp_error'
STATUS_ERROR     = 'error'

# helook answer codes.
HELO_CODE_TEMPFAIL = -1
HELO_CODE_REJECT   = 0
HELO_CODE_ACCEPT   = 1

# Identity check outcomes.
HELO_PROCEED = 'proceed'
HELO_TEMPFAIL = 'reject-temporary'
HELO_REJECT = 'reject-permanent'

# Control phase verdict actions.
ACT_PROCEED    = 'proceed'
ACT_REJECT     = 'reject'
ACT_DISCONNECT = 'disconnect'

REPLY_TEMPFAIL = '451 Temporary failure, please try again later.'
REPLY_HELO_REJECT = '550 EHLO failure, go away.'
REPLY_SYSERR = '550 System error.'

# The OpenSMTPD filter protocol (smtpd-filters(7)).
FILTER_PROTOCOL = '0.7'
FILTER_SUBSYSTEM = 'smtp-in'
END_OF_DATA = '.'
