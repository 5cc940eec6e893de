"""
Private UTXO Cryptographic Engine (privutxo)

Turns fungible token balances into private UTXO records:
- Pedersen commitments on BN254 G1 hide values
- Fiat-Shamir sigma proofs for ranges, splits and transfers
- Single-use nullifiers prevent double spends
- Signed attestations authorize every operation
"""

__version__ = "0.1.0"
