#
# test mdfilter.smtpd, the OpenSMTPD filter protocol, by feeding a
# Filter a scripted smtpd conversation.

import io
import os
import shutil
import tempfile
import unittest

from mdfilter import smtpd
from mdfilter.codec import DecodeError
from mdfilter.config import make_config
from mdfilter.consts import *
from mdfilter.dispatch import Dispatcher

from mdfilter.test_dispatch import FakeScanner

class decodeTests(unittest.TestCase):
	def testConfig(self):
		ev = smtpd.decode_event('config|smtpd-version|7.4.0\n')
		self.assertEqual((ev.kind, ev.name, ev.params),
				 ('config', 'smtpd-version', ['7.4.0']))
		ev = smtpd.decode_event('config|ready')
		self.assertEqual((ev.kind, ev.name, ev.params),
				 ('config', 'ready', []))

	def testReport(self):
		ev = smtpd.decode_event('report|0.7|1576146008.006099|smtp-in|'
					'link-connect|7641df9771b4ed00|mail.example|'
					'pass|192.0.2.1:33174|198.51.100.7:25\n')
		self.assertEqual(ev.kind, 'report')
		self.assertEqual(ev.version, '0.7')
		self.assertEqual(ev.subsystem, 'smtp-in')
		self.assertEqual(ev.name, 'link-connect')
		self.assertEqual(ev.session_id, '7641df9771b4ed00')
		self.assertEqual(ev.token, None)
		self.assertEqual(ev.params, ['mail.example', 'pass',
					     '192.0.2.1:33174', '198.51.100.7:25'])

	def testFilter(self):
		ev = smtpd.decode_event('filter|0.7|1576146008.006099|smtp-in|'
					'helo|7641df9771b4ed00|1ef1c203cc576e5d|'
					'client.example\n')
		self.assertEqual((ev.name, ev.session_id, ev.token, ev.params),
				 ('helo', '7641df9771b4ed00', '1ef1c203cc576e5d',
				  ['client.example']))

	def testDataLineKeepsPipes(self):
		ev = smtpd.decode_event('filter|0.7|1|smtp-in|data-line|s|t|a|b||c')
		self.assertEqual(ev.params, ['a|b||c'])
		ev = smtpd.decode_event('filter|0.7|1|smtp-in|data-line|s|t|')
		self.assertEqual(ev.params, [''])

	def testBadLines(self):
		for line in ('', 'bogus|1', 'report|0.7|1', 'filter|0.7|1|smtp-in|helo|s',
			     'config'):
			self.assertRaises(DecodeError, smtpd.decode_event, line)

	def testEncode(self):
		self.assertEqual(smtpd.encode_register('filter', 'commit'),
				 'register|filter|smtp-in|commit\n')
		self.assertEqual(smtpd.encode_result('s', 't', 'proceed'),
				 'filter-result|s|t|proceed\n')
		self.assertEqual(smtpd.encode_result('s', 't', 'reject', '451 later'),
				 'filter-result|s|t|reject|451 later\n')
		self.assertEqual(smtpd.encode_dataline('s', 't', 'x|y'),
				 'filter-dataline|s|t|x|y\n')

SID = '7641df9771b4ed00'

def report(name, *params):
	return '|'.join(('report', FILTER_PROTOCOL, '1576146008.0', 'smtp-in',
			 name, SID) + params) + '\n'

def filt(name, token, *params):
	return '|'.join(('filter', FILTER_PROTOCOL, '1576146008.0', 'smtp-in',
			 name, SID, token) + params) + '\n'

class conversationTests(unittest.TestCase):
	def setUp(self):
		self.root = tempfile.mkdtemp()
	def tearDown(self):
		shutil.rmtree(self.root, ignore_errors=True)

	def run_filter(self, lines, scanner, **cfgargs):
		cfg = make_config(spool_dir=self.root, **cfgargs)
		out = io.StringIO()
		f = smtpd.Filter(Dispatcher(cfg, scanner=scanner),
				 io.StringIO(''.join(lines)), out)
		f.run()
		return f, out.getvalue().splitlines()

	def transaction(self, body_lines):
		return [
			'config|smtpd-version|7.4.0\n',
			'config|ready\n',
			report('link-connect', 'client.example.org', 'pass',
			       '192.0.2.1:40000', '198.51.100.7:25'),
			filt('ehlo', 't1', 'client.example'),
			report('link-identify', 'EHLO', 'client.example'),
			report('link-auth', 'pass', 'alice'),
			report('tx-begin', '0a1b2c3d'),
			report('tx-mail', '0a1b2c3d', 'ok', 'a@x'),
			report('tx-rcpt', '0a1b2c3d', 'ok', 'b@y'),
			report('tx-rcpt', '0a1b2c3d', 'permfail', 'c@z'),
			report('tx-envelope', '0a1b2c3d', '0a1b2c3d01'),
			report('tx-data', '0a1b2c3d', 'ok'),
			] + [filt('data-line', 't2', ln) for ln in body_lines] + [
			filt('commit', 't3'),
			report('tx-commit', '0a1b2c3d', '100'),
			]

	def testRegistration(self):
		f, out = self.run_filter(['config|ready\n'], FakeScanner())
		self.assertEqual(out[-1], 'register|ready')
		self.assertIn('register|filter|smtp-in|data-line', out)
		self.assertIn('register|report|smtp-in|link-disconnect', out)
		self.assertEqual(len(out), len(f.filter_phases) +
				 len(f.report_events) + 1)

	def testWholeTransaction(self):
		sc = FakeScanner(results='IX-Flag 0 yes\n')
		lines = self.transaction(['Subject: Hi', 'From: a@x', '',
					  '..dot', 'hello', '.'])
		f, out = self.run_filter(lines, sc)
		results = [ln for ln in out if not ln.startswith('register|')]
		self.assertEqual(results, [
			'filter-result|%s|t1|proceed' % SID,
			'filter-dataline|%s|t2|X-Flag: yes' % SID,
			'filter-dataline|%s|t2|Subject: Hi' % SID,
			'filter-dataline|%s|t2|From: a@x' % SID,
			'filter-dataline|%s|t2|X-Scanned-By: MIMEDefang on 198.51.100.7' % SID,
			'filter-dataline|%s|t2|' % SID,
			'filter-dataline|%s|t2|..dot' % SID,
			'filter-dataline|%s|t2|hello' % SID,
			'filter-dataline|%s|t2|.' % SID,
			'filter-result|%s|t3|proceed' % SID,
			])
		self.assertEqual(sc.scans,
				 [('0a1b2c3d01',
				   os.path.join(self.root, 'mdefang-0a1b2c3d01'))])
		s = f.sessions[SID]
		self.assertEqual(s.identity, 'client.example')
		self.assertEqual(s.username, 'alice')
		self.assertEqual(s.message, None)

	def testCommandsFromReports(self):
		"""Report events feed what COMMANDS says about the message."""
		lines = self.transaction(['Subject: Hi', '', 'x', '.'])
		f, out = self.run_filter(lines, FakeScanner(), debug=True)
		with open(os.path.join(self.root, 'mdefang-0a1b2c3d01',
				       'COMMANDS')) as fp:
			cmds = fp.read().split('\n')
		for c in ('S<a@x>', 'Q0a1b2c3d01', 'X0a1b2c3d', 'Hclient.example',
			  '=auth_authen alice', 'I192.0.2.1', 'Rb@y ? ? ?'):
			self.assertIn(c, cmds)

	def testRejectedTransaction(self):
		sc = FakeScanner(results='B550 spam rejected\n')
		lines = self.transaction(['Subject: Hi', '', 'buy now', '.'])
		_, out = self.run_filter(lines, sc, scanned_by=False)
		self.assertEqual(out[-1],
				 'filter-result|%s|t3|reject|550 spam rejected' % SID)

	def testDeclinedRewriteEchoes(self):
		"""When there is nothing to rewrite the original lines go
		back and commit fails temporarily."""
		lines = self.transaction(['no headers here', '.'])
		_, out = self.run_filter(lines, FakeScanner())
		results = [ln for ln in out if not ln.startswith('register|')]
		self.assertEqual(results[1:], [
			'filter-dataline|%s|t2|no headers here' % SID,
			'filter-dataline|%s|t2|.' % SID,
			'filter-result|%s|t3|reject|%s' % (SID, REPLY_TEMPFAIL),
			])

	def testUnregisteredReportIgnored(self):
		"""Report events we never asked for change nothing."""
		lines = ['config|ready\n',
			 report('link-connect', 'client.example.org', 'pass',
				'192.0.2.1:40000', '198.51.100.7:25'),
			 report('link-greeting', 'mx.example.org')]
		f, out = self.run_filter(lines, FakeScanner())
		self.assertNotIn('register|report|smtp-in|link-greeting', out)
		self.assertEqual(out[-1], 'register|ready')
		s = f.sessions[SID]
		self.assertEqual((s.hostname, s.identity, s.message),
				 ('client.example.org', None, None))

	def testHeloCheck(self):
		lines = ['config|ready\n',
			 report('link-connect', 'client.example.org', 'pass',
				'192.0.2.1:40000', '198.51.100.7:25'),
			 filt('helo', 't1', 'bogus')]
		sc = FakeScanner(helo=HELO_REJECT)
		_, out = self.run_filter(lines, sc, helo_check=True)
		self.assertEqual(out[-1], 'filter-result|%s|t1|reject|%s' %
				 (SID, REPLY_HELO_REJECT))

	def testDisconnectCleans(self):
		"""A transaction that never commits is cleaned up when the
		link goes away."""
		lines = self.transaction(['Subject: Hi', '', 'x', '.'])[:-2]
		lines.append(report('link-disconnect'))
		f, _ = self.run_filter(lines, FakeScanner())
		self.assertEqual(os.listdir(self.root), [])
		self.assertEqual(f.sessions, {})

	def testRollbackCleans(self):
		lines = self.transaction(['Subject: Hi', '', 'x', '.'])[:-2]
		lines.append(report('tx-rollback', '0a1b2c3d'))
		f, _ = self.run_filter(lines, FakeScanner())
		self.assertEqual(os.listdir(self.root), [])
		self.assertEqual(f.sessions[SID].message, None)

if __name__ == "__main__":
	unittest.main()
