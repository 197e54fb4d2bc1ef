#
# Decide what to tell the MTA when a transaction commits.

import logging

from .consts import *

__all__ = ['resolve']

log = logging.getLogger(__name__)

def resolve(message):
	"""Return the (action, text) verdict for message at commit time.
	text is None when the action is ACT_PROCEED.

	The status is matched the loose way the multiplexor's answers
	have always been matched: by substring, 'ok' first."""
	status = message.status if message is not None else None
	if status is None:
		log.warning("no scan status, temporary failure")
		return (ACT_REJECT, REPLY_TEMPFAIL)
	if STATUS_OK in status:
		if message.reply:
			log.info("message %s rejected by scanner: %s",
				 message.id, message.reply)
			return (ACT_REJECT, message.reply)
		return (ACT_PROCEED, None)
	if STATUS_TEMPERROR in status:
		return (ACT_REJECT, REPLY_TEMPFAIL)
	if STATUS_ERROR in status:
		log.warning("message %s: scanner error %r", message.id, status)
		return (ACT_DISCONNECT, REPLY_SYSERR)
	log.warning("message %s: unknown scan status %r, proceeding",
		    message.id, status)
	return (ACT_PROCEED, None)
