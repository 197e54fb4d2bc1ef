#
# filter-mimedefang: an OpenSMTPD proc-exec filter that hands messages
# to MIMEDefang. Enable it in smtpd.conf with:
#
#	filter "mimedefang" proc-exec "filter-mimedefang" user _mdefang group _mdefang
#	listen on all filter "mimedefang"
#
import getopt
import io
import logging
import logging.handlers
import os
import sys

from .consts import FILE_ENCODING, FILE_ERRORS
from .config import make_config
from .dispatch import Dispatcher
from .smtpd import Filter

USAGE = 64 # EX_USAGE

usage_text = """usage: %s [-d] [-H] [-X] [-s spooldir] [-S socket]
		[-v version]
  -d	debug: log more and keep the spool directories
  -H	check HELO/EHLO names with the scanner
  -X	do not add an X-Scanned-By: header
  -s	spool directory to work in
  -S	path of the mimedefang-multiplexor socket
  -v	MIMEDefang version to name in X-Scanned-By:
"""

log = logging.getLogger('mdfilter')

def parse_args(argv):
	"""Turn command line arguments into a Config. Raises
	getopt.GetoptError on bad usage."""
	opts, args = getopt.getopt(argv, 'dHXs:S:v:')
	if args:
		raise getopt.GetoptError("unexpected argument: %s" % args[0])
	settings = {}
	for opt, arg in opts:
		if opt == '-d': settings['debug'] = True
		elif opt == '-H': settings['helo_check'] = True
		elif opt == '-X': settings['scanned_by'] = False
		elif opt == '-s': settings['spool_dir'] = arg
		elif opt == '-S': settings['socket_path'] = arg
		elif opt == '-v': settings['scanner_version'] = arg
	return make_config(**settings)

def setup_logging(cfg):
	if os.path.exists('/dev/log'):
		h = logging.handlers.SysLogHandler(
			address='/dev/log',
			facility=logging.handlers.SysLogHandler.LOG_MAIL)
		h.setFormatter(logging.Formatter(
			'filter-mimedefang[%(process)d]: %(levelname)s %(message)s'))
	else:
		# smtpd puts a filter's stderr in its own log.
		h = logging.StreamHandler(sys.stderr)
		h.setFormatter(logging.Formatter('%(name)s: %(levelname)s %(message)s'))
	log.addHandler(h)
	log.setLevel(logging.DEBUG if cfg.debug else logging.INFO)

def main(argv=None):
	if argv is None:
		argv = sys.argv
	try:
		cfg = parse_args(argv[1:])
	except getopt.GetoptError as err:
		sys.stderr.write('%s: %s\n' % (argv[0], err))
		sys.stderr.write(usage_text % argv[0])
		sys.exit(USAGE)
	setup_logging(cfg)

	infp = io.TextIOWrapper(sys.stdin.buffer, encoding=FILE_ENCODING,
				errors=FILE_ERRORS)
	outfp = io.TextIOWrapper(sys.stdout.buffer, encoding=FILE_ENCODING,
				 errors=FILE_ERRORS)
	Filter(Dispatcher(cfg), infp, outfp).run()

if __name__ == '__main__':
	main()
