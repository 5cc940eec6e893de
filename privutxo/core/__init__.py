"""Commitments, proofs, UTXO state and the private UTXO service"""
