"""Formatters that encode ACH files as Nacha text, Base64 or encrypted bytes."""