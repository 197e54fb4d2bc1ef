#
# test the command line and configuration handling.

import getopt
import unittest

from mdfilter import main
from mdfilter.config import make_config
from mdfilter.consts import MDSPOOL_PATH, SOCK_PATH

class configTests(unittest.TestCase):
	def testDefaults(self):
		cfg = make_config()
		self.assertEqual(cfg.spool_dir, MDSPOOL_PATH)
		self.assertEqual(cfg.socket_path, SOCK_PATH)
		self.assertFalse(cfg.debug)
		self.assertFalse(cfg.helo_check)
		self.assertTrue(cfg.scanned_by)
		self.assertEqual(cfg.timeout, None)
		self.assertEqual(cfg.scanner_version, None)

	def testImmutable(self):
		cfg = make_config()
		self.assertRaises(AttributeError, setattr, cfg, 'debug', True)

	def testUnknown(self):
		self.assertRaises(TypeError, make_config, debgu=True)

class argsTests(unittest.TestCase):
	def testNoArgs(self):
		self.assertEqual(main.parse_args([]), make_config())

	def testFlags(self):
		cfg = main.parse_args(['-d', '-H', '-X', '-s', '/tmp/spool',
				       '-S', '/tmp/md.sock', '-v', '3.4'])
		self.assertEqual(cfg, make_config(debug=True, helo_check=True,
						  scanned_by=False,
						  spool_dir='/tmp/spool',
						  socket_path='/tmp/md.sock',
						  scanner_version='3.4'))

	def testBadUsage(self):
		for args in (['-z'], ['extra'], ['-s'], ['-v']):
			self.assertRaises(getopt.GetoptError, main.parse_args, args)

	def testMainExits(self):
		try:
			main.main(['filter-mimedefang', '-z'])
		except SystemExit as e:
			self.assertEqual(e.code, main.USAGE)
		else:
			self.fail("no SystemExit")

if __name__ == "__main__":
	unittest.main()
