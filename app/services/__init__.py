"""
Services.

Business logic layer. The referral commission engine lives in
app.services.referral.
"""
