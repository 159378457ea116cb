import pytest

from duco_fleet.duco.messages import (
    MAX_RAW_DIFFICULTY,
    AckStatus,
    Job,
    build_job_request,
    build_result,
    classify_ack,
    parse_job,
)
from duco_fleet.errors import MalformedJobError


def test_parse_job_keeps_hashes_and_scales_difficulty():
    job = parse_job("aaa,111,1\n")
    assert job == Job(last_hash="aaa", expected_hash="111", raw_difficulty=1)
    assert job.difficulty == 101


@pytest.mark.parametrize("raw, expected", [(0, 1), (6, 601), (1500, 150001)])
def test_difficulty_scaling(raw, expected):
    job = parse_job(f"4f3c2a,9b8e7d6c,{raw}")
    assert job.last_hash == "4f3c2a"
    assert job.expected_hash == "9b8e7d6c"
    assert job.difficulty == expected


def test_parse_job_ignores_extra_fields():
    job = parse_job("aaa,bbb,2,extra")
    assert job.difficulty == 201


@pytest.mark.parametrize("line", ["", "aaa", "aaa,111", "  aaa,111  \n"])
def test_too_few_fields_is_malformed(line):
    with pytest.raises(MalformedJobError) as exc_info:
        parse_job(line)
    assert exc_info.value.raw == line.strip()


@pytest.mark.parametrize("diff", ["x", "", "-1", "1.5", "0x10", "²"])
def test_non_numeric_difficulty_is_malformed(diff):
    with pytest.raises(MalformedJobError):
        parse_job(f"aaa,111,{diff}")


def test_build_job_request():
    assert build_job_request("alice", "AVR") == "JOB,alice,AVR\n"


def test_build_result_formats_rate_to_two_decimals():
    line = build_result(50, 190.0038, "Official AVR Miner v2.6", "avr-1", "DUCOID0A1B2C3D")
    assert line == "50,190.00,Official AVR Miner v2.6,avr-1,DUCOID0A1B2C3D\n"


@pytest.mark.parametrize(
    "text, status",
    [
        ("GOOD", AckStatus.GOOD),
        ("GOOD\n", AckStatus.GOOD),
        ("BLOCK", AckStatus.BLOCK),
        ("BAD,Incorrect result", AckStatus.OTHER),
        ("good", AckStatus.OTHER),
        ("", AckStatus.OTHER),
    ],
)
def test_classify_ack(text, status):
    assert classify_ack(text) is status


def test_largest_32_bit_difficulty_is_accepted():
    job = parse_job("aaa,111,4294967295")
    assert job.raw_difficulty == MAX_RAW_DIFFICULTY
    assert job.difficulty == 429496729501


@pytest.mark.parametrize("diff", ["4294967296", "99999999999999999999"])
def test_difficulty_above_32_bits_is_malformed(diff):
    with pytest.raises(MalformedJobError, match="difficulty out of range"):
        parse_job(f"aaa,111,{diff}")
