"""Backend GrowWise: commandes et réconciliation des paiements Stripe."""
