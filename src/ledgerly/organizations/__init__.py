"""Organizations: tenancy, membership, invitations and subscription state."""
