"""Property-record title extraction: documents in, deeds/liens/judgments out"""
