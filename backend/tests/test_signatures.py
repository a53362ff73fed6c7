import base64
import unittest

from billing.core.signatures import (
    SCHEME_RAW,
    build_paddle_header,
    build_raw_header,
    compute_digest,
    parse_paddle_header,
    verify_signature,
)


SECRET = "pdl_ntfset_test_secret"
BODY = b'{"event_type":"transaction.completed","data":{"id":"txn_01"}}'


class TestPaddleScheme(unittest.TestCase):
    def test_valid_header(self):
        header = build_paddle_header(BODY, SECRET, ts=1_700_000_000)
        self.assertTrue(verify_signature(BODY, header, SECRET, max_age_s=300, now=1_700_000_010))

    def test_tampered_body(self):
        header = build_paddle_header(BODY, SECRET, ts=1_700_000_000)
        tampered = BODY.replace(b"txn_01", b"txn_02")
        self.assertFalse(verify_signature(tampered, header, SECRET, now=1_700_000_000))

    def test_wrong_secret(self):
        header = build_paddle_header(BODY, "another_secret", ts=1_700_000_000)
        self.assertFalse(verify_signature(BODY, header, SECRET, now=1_700_000_000))

    def test_stale_timestamp(self):
        header = build_paddle_header(BODY, SECRET, ts=1_700_000_000)
        self.assertFalse(verify_signature(BODY, header, SECRET, max_age_s=300, now=1_700_000_301))

    def test_age_check_disabled(self):
        header = build_paddle_header(BODY, SECRET, ts=1_600_000_000)
        self.assertTrue(verify_signature(BODY, header, SECRET, max_age_s=0, now=1_700_000_000))

    def test_rotated_secret_second_candidate(self):
        good = build_paddle_header(BODY, SECRET, ts=1_700_000_000)
        _, sigs = parse_paddle_header(good)
        header = f"ts=1700000000;h1={'0' * 64};h1={sigs[0]}"
        self.assertTrue(verify_signature(BODY, header, SECRET, now=1_700_000_000))

    def test_header_without_timestamp(self):
        digest = compute_digest(SECRET, BODY).hex()
        self.assertFalse(verify_signature(BODY, f"h1={digest}", SECRET))

    def test_non_numeric_timestamp(self):
        self.assertFalse(verify_signature(BODY, "ts=abc;h1=00", SECRET))

    def test_parse_header(self):
        ts, sigs = parse_paddle_header(" ts=123 ; h1=aa;h1=bb;junk")
        self.assertEqual(ts, "123")
        self.assertEqual(sigs, ["aa", "bb"])


class TestRawScheme(unittest.TestCase):
    def test_base64_digest(self):
        header = build_raw_header(BODY, SECRET)
        self.assertTrue(verify_signature(BODY, header, SECRET, scheme=SCHEME_RAW))

    def test_hex_digest(self):
        header = compute_digest(SECRET, BODY).hex()
        self.assertTrue(verify_signature(BODY, header, SECRET, scheme=SCHEME_RAW))

    def test_mismatch(self):
        header = base64.b64encode(b"\x00" * 32).decode("ascii")
        self.assertFalse(verify_signature(BODY, header, SECRET, scheme=SCHEME_RAW))

    def test_garbage_header(self):
        self.assertFalse(verify_signature(BODY, "not base64 !!", SECRET, scheme=SCHEME_RAW))


class TestRejections(unittest.TestCase):
    def test_missing_header(self):
        self.assertFalse(verify_signature(BODY, None, SECRET))
        self.assertFalse(verify_signature(BODY, "   ", SECRET))

    def test_missing_secret(self):
        header = build_paddle_header(BODY, SECRET)
        self.assertFalse(verify_signature(BODY, header, None))
        self.assertFalse(verify_signature(BODY, header, ""))

    def test_empty_body(self):
        header = build_paddle_header(b"", SECRET)
        self.assertFalse(verify_signature(b"", header, SECRET))

    def test_unknown_scheme(self):
        header = build_raw_header(BODY, SECRET)
        self.assertFalse(verify_signature(BODY, header, SECRET, scheme="stripe"))


if __name__ == "__main__":
    unittest.main()
