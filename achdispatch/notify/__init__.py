"""Namespace for notification senders; it holds no modules at present."""