"""claimpacket API routers."""
