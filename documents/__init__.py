"""
Documents app

Sessions and parsed documents that the generation pipeline reads from and
writes generated artifacts into. Upload and text extraction happen elsewhere;
this app only stores the extracted text.
"""
