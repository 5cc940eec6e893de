"""
ProofEngine - proof generation and verification for private UTXOs.

Generation functions raise taxonomy errors for bad witnesses
(OutOfRange, InvalidBlinding, ValueConservationViolation). Verification
functions are boolean predicates and never raise: they sit on security
critical paths where an escaping exception could be mistaken for
"verified".
"""

import time
from typing import List, Optional, Sequence, Tuple

from privutxo.core.commitment import CommitmentEngine, default_commitment_engine
from privutxo.core.errors import (
    InvalidBlinding,
    InvalidScalar,
    OutOfRange,
    PrivUTXOError,
    ValueConservationViolation,
)
from privutxo.core.prover.proofs import (
    BitProof,
    EqualityProof,
    RangeProof,
    SchnorrProof,
    SplitProof,
)
from privutxo.core.prover.transcript import Transcript
from privutxo.core.randomness import HashProvider, Keccak256Hasher, NullifierAndRandomness
from privutxo.crypto.curve import (
    CURVE_ORDER,
    IDENTITY,
    CurvePoint,
    add_points,
    double_point,
    is_on_curve,
    subtract_points,
)
from privutxo.utils.logger import get_logger

logger = get_logger("prover")

# Decompositions wider than this are refused; the group order is ~2^254
MAX_RANGE_BITS = 128

LABEL_RANGE = b"range-proof"
LABEL_SPLIT = b"split-proof"
LABEL_EQUALITY = b"equality-proof"


class ProofEngine:
    """
    Builds and checks range, split and equality proofs.

    Attributes:
        commitments: Commitment engine (generators G, H)
        randomness: Source of proof nonces and bit blindings
        hasher: Digest for the Fiat-Shamir transcript
        range_bits: Default width for output range proofs
    """

    def __init__(
        self,
        commitments: Optional[CommitmentEngine] = None,
        randomness: Optional[NullifierAndRandomness] = None,
        hasher: Optional[HashProvider] = None,
        range_bits: int = 32,
    ):
        if not (1 <= range_bits <= MAX_RANGE_BITS):
            raise ValueError(f"range_bits must be in [1, {MAX_RANGE_BITS}]")
        self.commitments = commitments or default_commitment_engine()
        self.randomness = randomness or NullifierAndRandomness()
        self.hasher = hasher or Keccak256Hasher()
        self.range_bits = range_bits

        self.proofs_generated = 0
        self.proofs_verified = 0
        self.proofs_rejected = 0
        self.proving_time_ms = 0

    @property
    def max_value(self) -> int:
        return (1 << self.range_bits) - 1

    @property
    def h(self) -> CurvePoint:
        return self.commitments.h

    @property
    def g(self) -> CurvePoint:
        return self.commitments.g

    def _transcript(self, label: bytes) -> Transcript:
        transcript = Transcript(label, self.hasher)
        transcript.append_point(b"G", self.g)
        transcript.append_point(b"H", self.h)
        return transcript

    def _record(self, started: float) -> None:
        self.proofs_generated += 1
        self.proving_time_ms += int((time.perf_counter() - started) * 1000)

    def _verdict(self, ok: bool) -> bool:
        if ok:
            self.proofs_verified += 1
        else:
            self.proofs_rejected += 1
        return ok

    # =========================================================================
    # Schnorr (knowledge of x with P = x*H)
    # =========================================================================

    def _prove_dlog_h(self, transcript: Transcript, point: CurvePoint, secret: int) -> SchnorrProof:
        k = self.randomness.random_scalar()
        announcement = self.commitments.commit_to_h(k)
        transcript.append_point(b"P", point)
        transcript.append_point(b"A", announcement)
        c = transcript.challenge_scalar(b"schnorr")
        s = (k + c * secret) % CURVE_ORDER
        return SchnorrProof(challenge=c, response=s)

    def _verify_dlog_h(self, transcript: Transcript, point: CurvePoint, proof: SchnorrProof) -> bool:
        if not (0 <= proof.challenge < CURVE_ORDER and 0 <= proof.response < CURVE_ORDER):
            return False
        # A = s*H - c*P
        announcement = subtract_points(
            self.commitments.commit_to_h(proof.response),
            self.commitments.scalar_mul(point, proof.challenge),
        )
        transcript.append_point(b"P", point)
        transcript.append_point(b"A", announcement)
        return transcript.challenge_scalar(b"schnorr") == proof.challenge

    # =========================================================================
    # Range Proofs
    # =========================================================================

    def _split_blinding(self, blinding: int, bits: int) -> List[int]:
        """
        Per-bit blindings r_i with sum(2^i * r_i) = blinding (mod n).

        All but the last are random; the last absorbs the remainder.
        """
        blindings = []
        remaining = blinding % CURVE_ORDER
        for i in range(bits - 1):
            r_i = self.randomness.random_scalar()
            blindings.append(r_i)
            remaining = (remaining - r_i * (1 << i)) % CURVE_ORDER
        last_weight_inv = pow(1 << (bits - 1), CURVE_ORDER - 2, CURVE_ORDER)
        blindings.append((remaining * last_weight_inv) % CURVE_ORDER)
        return blindings

    def _commit_bits(self, value: int, blinding: int, bits: int) -> Tuple[List[int], List[int], List[CurvePoint]]:
        bit_values = [(value >> i) & 1 for i in range(bits)]
        bit_blindings = self._split_blinding(blinding, bits)
        bit_commitments = [
            self.commitments.commit_bit(b, r) for b, r in zip(bit_values, bit_blindings)
        ]
        return bit_values, bit_blindings, bit_commitments

    def _prove_bit(
        self,
        transcript: Transcript,
        commitment: CurvePoint,
        bit: int,
        blinding: int,
    ) -> BitProof:
        # P_j = C - j*G; the real branch knows r with P_bit = r*H
        points = (commitment, subtract_points(commitment, self.g))
        fake = 1 - bit

        k = self.randomness.random_scalar()
        c_fake = self.randomness.random_scalar()
        s_fake = self.randomness.random_scalar()

        announcements = [IDENTITY, IDENTITY]
        announcements[bit] = self.commitments.commit_to_h(k)
        announcements[fake] = subtract_points(
            self.commitments.commit_to_h(s_fake),
            self.commitments.scalar_mul(points[fake], c_fake),
        )

        transcript.append_point(b"C", commitment)
        transcript.append_point(b"A0", announcements[0])
        transcript.append_point(b"A1", announcements[1])
        c = transcript.challenge_scalar(b"bit")

        c_real = (c - c_fake) % CURVE_ORDER
        s_real = (k + c_real * blinding) % CURVE_ORDER

        if bit == 0:
            return BitProof(commitment=commitment, c0=c_real, c1=c_fake, s0=s_real, s1=s_fake)
        return BitProof(commitment=commitment, c0=c_fake, c1=c_real, s0=s_fake, s1=s_real)

    def _verify_bit(self, transcript: Transcript, proof: BitProof) -> bool:
        for scalar in (proof.c0, proof.c1, proof.s0, proof.s1):
            if not (0 <= scalar < CURVE_ORDER):
                return False
        points = (proof.commitment, subtract_points(proof.commitment, self.g))
        a0 = subtract_points(
            self.commitments.commit_to_h(proof.s0),
            self.commitments.scalar_mul(points[0], proof.c0),
        )
        a1 = subtract_points(
            self.commitments.commit_to_h(proof.s1),
            self.commitments.scalar_mul(points[1], proof.c1),
        )
        transcript.append_point(b"C", proof.commitment)
        transcript.append_point(b"A0", a0)
        transcript.append_point(b"A1", a1)
        c = transcript.challenge_scalar(b"bit")
        return (proof.c0 + proof.c1) % CURVE_ORDER == c

    @staticmethod
    def _weighted_sum(points: Sequence[CurvePoint]) -> CurvePoint:
        """sum(2^i * P_i) by Horner's rule (doublings instead of multiplications)."""
        acc = IDENTITY
        for point in reversed(points):
            acc = add_points(double_point(acc), point)
        return acc

    @staticmethod
    def _range_bit_length(min_value: int, max_value: int) -> int:
        return max(1, (max_value - min_value).bit_length())

    def _range_sides(self, commitment: CurvePoint, min_value: int, max_value: int, bits: int):
        """Shifted commitments for the lower and (optional) upper decomposition."""
        lower = subtract_points(commitment, self.commitments.value_point(min_value))
        needs_upper = (max_value - min_value) != (1 << bits) - 1
        upper = subtract_points(self.commitments.value_point(max_value), commitment) if needs_upper else None
        return lower, upper

    def _range_transcript(self, commitment: CurvePoint, min_value: int, max_value: int, bits: int) -> Transcript:
        transcript = self._transcript(LABEL_RANGE)
        transcript.append_point(b"commitment", commitment)
        transcript.append_int(b"min", min_value)
        transcript.append_int(b"max", max_value)
        transcript.append_int(b"bits", bits)
        return transcript

    def generate_range_proof(
        self,
        value: int,
        blinding: int,
        min_value: int = 0,
        max_value: Optional[int] = None,
    ) -> RangeProof:
        """
        Prove min_value <= value <= max_value for C = value*G + blinding*H.

        Raises:
            OutOfRange: value outside the bounds, or bounds malformed/too wide
            InvalidBlinding: blinding outside [0, n)
        """
        if max_value is None:
            max_value = self.max_value
        if not isinstance(blinding, int) or not (0 <= blinding < CURVE_ORDER):
            raise InvalidBlinding("Blinding factor must be in [0, n)")
        if not isinstance(value, int) or isinstance(value, bool):
            raise OutOfRange(f"Value must be an integer, got {type(value).__name__}")
        if min_value < 0 or max_value < min_value:
            raise OutOfRange(f"Invalid range [{min_value}, {max_value}]")
        if not (min_value <= value <= max_value):
            raise OutOfRange(f"Value outside [{min_value}, {max_value}]")
        bits = self._range_bit_length(min_value, max_value)
        if bits > MAX_RANGE_BITS:
            raise OutOfRange(f"Range wider than {MAX_RANGE_BITS} bits")

        started = time.perf_counter()
        commitment = self.commitments.create_commitment(value, blinding)
        lower_point, upper_point = self._range_sides(commitment, min_value, max_value, bits)

        sides = [(value - min_value, blinding)]
        if upper_point is not None:
            sides.append((max_value - value, (-blinding) % CURVE_ORDER))

        decompositions = [self._commit_bits(v, r, bits) for v, r in sides]

        transcript = self._range_transcript(commitment, min_value, max_value, bits)
        for _, _, bit_commitments in decompositions:
            for bc in bit_commitments:
                transcript.append_point(b"bit-commitment", bc)

        proven_sides: List[List[BitProof]] = []
        for side_index, (bit_values, bit_blindings, bit_commitments) in enumerate(decompositions):
            side_proofs = []
            for i, (b, r, bc) in enumerate(zip(bit_values, bit_blindings, bit_commitments)):
                branch = transcript.fork().append_int(b"side", side_index).append_int(b"index", i)
                side_proofs.append(self._prove_bit(branch, bc, b, r))
            proven_sides.append(side_proofs)

        proof = RangeProof(
            commitment=commitment,
            min_value=min_value,
            max_value=max_value,
            bit_length=bits,
            lower_bits=proven_sides[0],
            upper_bits=proven_sides[1] if len(proven_sides) > 1 else [],
        )
        self._record(started)
        logger.debug(f"Range proof generated: [{min_value}, {max_value}], {bits} bits x {len(proven_sides)} sides")
        return proof

    def verify_range_proof(self, proof: RangeProof, commitment: Optional[CurvePoint] = None) -> bool:
        """
        Check a range proof, optionally also that it is about `commitment`.
        """
        try:
            return self._verdict(self._check_range_proof(proof, commitment))
        except (PrivUTXOError, ValueError, TypeError, AttributeError, OverflowError) as e:
            logger.debug(f"Range proof rejected: {e}")
            return self._verdict(False)

    def _check_range_proof(self, proof: RangeProof, commitment: Optional[CurvePoint]) -> bool:
        if commitment is not None and proof.commitment != commitment:
            return False
        if not is_on_curve(proof.commitment):
            return False
        if proof.min_value < 0 or proof.max_value < proof.min_value:
            return False
        bits = self._range_bit_length(proof.min_value, proof.max_value)
        if proof.bit_length != bits or bits > MAX_RANGE_BITS:
            return False

        lower_point, upper_point = self._range_sides(proof.commitment, proof.min_value, proof.max_value, bits)
        sides = [(lower_point, proof.lower_bits)]
        if upper_point is not None:
            sides.append((upper_point, proof.upper_bits))
        elif proof.upper_bits:
            return False

        for _, bit_proofs in sides:
            if len(bit_proofs) != bits:
                return False
            if not all(is_on_curve(b.commitment) for b in bit_proofs):
                return False

        for side_point, bit_proofs in sides:
            if self._weighted_sum([b.commitment for b in bit_proofs]) != side_point:
                return False

        transcript = self._range_transcript(proof.commitment, proof.min_value, proof.max_value, bits)
        for _, bit_proofs in sides:
            for b in bit_proofs:
                transcript.append_point(b"bit-commitment", b.commitment)

        for side_index, (_, bit_proofs) in enumerate(sides):
            for i, bit_proof in enumerate(bit_proofs):
                branch = transcript.fork().append_int(b"side", side_index).append_int(b"index", i)
                if not self._verify_bit(branch, bit_proof):
                    return False
        return True

    # =========================================================================
    # Split Proofs
    # =========================================================================

    def _split_transcript(self, input_commitment: CurvePoint, output_commitments: Sequence[CurvePoint]) -> Transcript:
        transcript = self._transcript(LABEL_SPLIT)
        transcript.append_point(b"input", input_commitment)
        transcript.append_int(b"outputs", len(output_commitments))
        for c in output_commitments:
            transcript.append_point(b"output", c)
        return transcript

    def generate_split_proof(
        self,
        input_value: int,
        output_values: Sequence[int],
        input_blinding: int,
        output_blindings: Sequence[int],
    ) -> SplitProof:
        """
        Prove that one input commitment splits into the output commitments.

        Raises:
            ValueConservationViolation: sum mismatch or length mismatch,
                checked before any cryptography
            InvalidScalar / OutOfRange / InvalidBlinding: bad witnesses
        """
        if len(output_values) != len(output_blindings):
            raise ValueConservationViolation(
                f"{len(output_values)} output values but {len(output_blindings)} blinding factors"
            )
        if not output_values:
            raise ValueConservationViolation("Split needs at least one output")
        if sum(output_values) != input_value:
            raise ValueConservationViolation(
                f"Outputs sum to {sum(output_values)}, input is {input_value}"
            )

        started = time.perf_counter()
        input_commitment = self.commitments.create_commitment(input_value, input_blinding)
        output_commitments = [
            self.commitments.create_commitment(v, r) for v, r in zip(output_values, output_blindings)
        ]
        range_proofs = [
            self.generate_range_proof(v, r, 0, self.max_value)
            for v, r in zip(output_values, output_blindings)
        ]

        excess = (input_blinding - sum(output_blindings)) % CURVE_ORDER
        residual = subtract_points(input_commitment, self.commitments.add_commitments(output_commitments))

        transcript = self._split_transcript(input_commitment, output_commitments)
        balance = self._prove_dlog_h(transcript, residual, excess)

        proof = SplitProof(
            input_commitment=input_commitment,
            output_commitments=output_commitments,
            balance_proof=balance,
            output_range_proofs=range_proofs,
        )
        self._record(started)
        logger.debug(f"Split proof generated: 1 -> {len(output_commitments)} outputs")
        return proof

    def verify_split_proof(
        self,
        proof: SplitProof,
        input_commitment: Optional[CurvePoint] = None,
        output_commitments: Optional[Sequence[CurvePoint]] = None,
    ) -> bool:
        """Check conservation and output ranges, optionally against given commitments."""
        try:
            return self._verdict(self._check_split_proof(proof, input_commitment, output_commitments))
        except (PrivUTXOError, ValueError, TypeError, AttributeError, OverflowError) as e:
            logger.debug(f"Split proof rejected: {e}")
            return self._verdict(False)

    def _check_split_proof(self, proof, input_commitment, output_commitments) -> bool:
        if input_commitment is not None and proof.input_commitment != input_commitment:
            return False
        if output_commitments is not None and list(proof.output_commitments) != list(output_commitments):
            return False
        if not proof.output_commitments:
            return False
        if not is_on_curve(proof.input_commitment):
            return False
        if not all(is_on_curve(c) for c in proof.output_commitments):
            return False
        if len(proof.output_range_proofs) != len(proof.output_commitments):
            return False

        for c, range_proof in zip(proof.output_commitments, proof.output_range_proofs):
            if range_proof.min_value != 0 or range_proof.max_value > self.max_value:
                return False
            if not self._check_range_proof(range_proof, c):
                return False

        residual = subtract_points(
            proof.input_commitment, self.commitments.add_commitments(proof.output_commitments)
        )
        transcript = self._split_transcript(proof.input_commitment, proof.output_commitments)
        return self._verify_dlog_h(transcript, residual, proof.balance_proof)

    # =========================================================================
    # Equality Proofs
    # =========================================================================

    def _equality_transcript(self, a: CurvePoint, b: CurvePoint) -> Transcript:
        transcript = self._transcript(LABEL_EQUALITY)
        transcript.append_point(b"A", a)
        transcript.append_point(b"B", b)
        return transcript

    def generate_equality_proof(
        self,
        commitment_a: CurvePoint,
        commitment_b: CurvePoint,
        value: int,
        blinding_a: int,
        blinding_b: int,
    ) -> EqualityProof:
        """
        Prove commitment_a and commitment_b open to the same value.

        Raises:
            ValueConservationViolation: either commitment does not open to
                value under its blinding
        """
        if not self.commitments.verify_commitment(commitment_a, value, blinding_a):
            raise ValueConservationViolation("First commitment does not open to the claimed value")
        if not self.commitments.verify_commitment(commitment_b, value, blinding_b):
            raise ValueConservationViolation("Second commitment does not open to the claimed value")

        started = time.perf_counter()
        difference = subtract_points(commitment_a, commitment_b)
        secret = (blinding_a - blinding_b) % CURVE_ORDER
        transcript = self._equality_transcript(commitment_a, commitment_b)
        proof = EqualityProof(
            commitment_a=commitment_a,
            commitment_b=commitment_b,
            proof=self._prove_dlog_h(transcript, difference, secret),
        )
        self._record(started)
        return proof

    def verify_equality_proof(
        self,
        proof: EqualityProof,
        commitment_a: Optional[CurvePoint] = None,
        commitment_b: Optional[CurvePoint] = None,
    ) -> bool:
        try:
            if commitment_a is not None and proof.commitment_a != commitment_a:
                return self._verdict(False)
            if commitment_b is not None and proof.commitment_b != commitment_b:
                return self._verdict(False)
            if not (is_on_curve(proof.commitment_a) and is_on_curve(proof.commitment_b)):
                return self._verdict(False)
            difference = subtract_points(proof.commitment_a, proof.commitment_b)
            transcript = self._equality_transcript(proof.commitment_a, proof.commitment_b)
            return self._verdict(self._verify_dlog_h(transcript, difference, proof.proof))
        except (PrivUTXOError, ValueError, TypeError, AttributeError, OverflowError) as e:
            logger.debug(f"Equality proof rejected: {e}")
            return self._verdict(False)

    # =========================================================================
    # Utility
    # =========================================================================

    def stats(self) -> dict:
        """Get prover statistics."""
        return {
            "proofs_generated": self.proofs_generated,
            "proofs_verified": self.proofs_verified,
            "proofs_rejected": self.proofs_rejected,
            "proving_time_ms": self.proving_time_ms,
            "range_bits": self.range_bits,
        }
