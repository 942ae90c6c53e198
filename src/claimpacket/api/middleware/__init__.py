"""claimpacket API middleware."""
