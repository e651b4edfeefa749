"""Request and response contracts for the enquiry gateway.

  - enquiry.py — EnquiryRequest (inbound JSON body), EnquiryResponse (200 body)
"""
