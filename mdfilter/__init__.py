"""An OpenSMTPD filter that has messages scanned and rewritten by
MIMEDefang."""

__version__ = '0.2'
