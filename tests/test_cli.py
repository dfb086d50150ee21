"""CLI tests."""

from click.testing import CliRunner

from drain.accounts import LocalAccount, MultisigAccount
from drain.cli import main


ADMIN = LocalAccount.generate()
OWNERS = [LocalAccount.generate() for _ in range(3)]
WALLET = MultisigAccount.from_owners(OWNERS, threshold=2)
RECEIVER = LocalAccount.generate().address
PUBLIC_KEYS = ",".join(o.public_key_bytes.hex() for o in OWNERS)


def make_env(tmp_path):
    return {
        "DRAIN_HOME": str(tmp_path / "drain"),
        "DRAIN_ADMIN_ADDRESS": ADMIN.address,
        "DRAIN_MODULE_ADDRESS": ADMIN.address,
        "DRAIN_AUDIT_HMAC_KEY": "test-key",
    }


def invoke(runner, env, args, key=None):
    result = runner.invoke(main, args, env=env, input=(key + "\n") if key else None)
    return result


def last_line(result):
    return result.output.strip().splitlines()[-1]


def setup_wallet(runner, env, budget="1000"):
    assert invoke(runner, env, ["init"], key=ADMIN.private_key_hex).exit_code == 0
    for owner in OWNERS:
        assert invoke(runner, env, ["dev", "register-owner", owner.address, WALLET.address]).exit_code == 0
    assert invoke(runner, env, ["dev", "mint", WALLET.address, "--asset", "0xa", "--amount", "5000"]).exit_code == 0
    result = invoke(
        runner, env, ["allow-wallet", WALLET.address, "--owner", OWNERS[0].address], key=ADMIN.private_key_hex
    )
    assert result.exit_code == 0, result.output
    result = invoke(
        runner, env, ["grant", WALLET.address, "--asset", "0xa", "--amount", budget], key=ADMIN.private_key_hex
    )
    assert result.exit_code == 0, result.output


def test_init_rejects_raw_key_on_argv(tmp_path):
    runner = CliRunner()
    result = runner.invoke(main, ["init", "--admin-key", ADMIN.private_key_hex], env=make_env(tmp_path))

    assert result.exit_code != 0
    assert "Refusing --admin-key from argv" in result.output


def test_init_allows_raw_key_with_unsafe_flag(tmp_path):
    runner = CliRunner()
    result = runner.invoke(
        main,
        ["init", "--admin-key", ADMIN.private_key_hex, "--unsafe-allow-key-arg"],
        env=make_env(tmp_path),
    )

    assert result.exit_code == 0, result.output
    assert "Drain initialized" in result.output


def test_init_by_non_admin_fails(tmp_path):
    runner = CliRunner()
    result = invoke(runner, make_env(tmp_path), ["init"], key=OWNERS[0].private_key_hex)

    assert result.exit_code == 1
    assert "not the administrator" in result.output


def test_status_before_init(tmp_path):
    result = invoke(CliRunner(), make_env(tmp_path), ["status"])
    assert result.exit_code == 0
    assert "not initialized" in result.output


def test_full_request_and_execute_flow(tmp_path):
    runner = CliRunner()
    env = make_env(tmp_path)
    setup_wallet(runner, env)

    result = invoke(
        runner,
        env,
        ["request", WALLET.address, "--sequence-number", "0", "--receiver", RECEIVER,
         "--asset", "0xa", "--amount", "400"],
        key=OWNERS[0].private_key_hex,
    )
    assert result.exit_code == 0, result.output
    assert "Withdrawal request #0 created" in result.output

    result = invoke(runner, env, ["budget", WALLET.address, "--asset", "0xa"])
    assert "Remaining budget: 600" in result.output

    signatures = []
    for index in (0, 2):
        result = invoke(runner, env, ["sign", WALLET.address, "0"], key=OWNERS[index].private_key_hex)
        assert result.exit_code == 0, result.output
        signatures += ["--signature", f"{index}:{last_line(result)}"]

    result = invoke(
        runner,
        env,
        ["execute", WALLET.address, "0", "--public-keys", PUBLIC_KEYS, "--threshold", "2", *signatures],
    )
    assert result.exit_code == 0, result.output
    assert "executed" in result.output

    result = invoke(runner, env, ["dev", "balance", RECEIVER, "--asset", "0xa"])
    assert last_line(result) == "400"

    result = invoke(runner, env, ["wallet", WALLET.address])
    assert "#0 400" in result.output
    assert "(executed)" in result.output

    result = invoke(runner, env, ["audit", "--wallet", WALLET.address])
    assert "request_executed #0 400" in result.output


def test_execute_requires_threshold_signatures(tmp_path):
    runner = CliRunner()
    env = make_env(tmp_path)
    setup_wallet(runner, env)
    invoke(
        runner,
        env,
        ["request", WALLET.address, "--sequence-number", "0", "--receiver", RECEIVER,
         "--asset", "0xa", "--amount", "400"],
        key=OWNERS[0].private_key_hex,
    )
    sign = invoke(runner, env, ["sign", WALLET.address, "0"], key=OWNERS[0].private_key_hex)

    result = invoke(
        runner,
        env,
        ["execute", WALLET.address, "0", "--public-keys", PUBLIC_KEYS, "--threshold", "2",
         "--signature", f"0:{last_line(sign)}"],
    )
    assert result.exit_code == 1
    assert "Fewer than 2 valid owner signatures" in result.output

    balance = invoke(runner, env, ["dev", "balance", RECEIVER, "--asset", "0xa"])
    assert last_line(balance) == "0"


def test_request_over_budget(tmp_path):
    runner = CliRunner()
    env = make_env(tmp_path)
    setup_wallet(runner, env, budget="100")

    result = invoke(
        runner,
        env,
        ["request", WALLET.address, "--sequence-number", "0", "--receiver", RECEIVER,
         "--asset", "0xa", "--amount", "101"],
        key=OWNERS[0].private_key_hex,
    )
    assert result.exit_code == 1
    assert "exceeds remaining budget 100" in result.output


def test_encode_preview(tmp_path):
    result = invoke(
        CliRunner(),
        make_env(tmp_path),
        ["encode", "0x1", "--sequence-number", "0", "--request-id", "0", "--now", "100"],
    )
    assert result.exit_code == 0
    payload = last_line(result)
    assert payload.startswith("0x")
    assert len(payload) == 2 + 154 * 2


def test_dev_multisig_address():
    result = CliRunner().invoke(
        main, ["dev", "multisig-address", "--public-keys", PUBLIC_KEYS, "--threshold", "2"]
    )
    assert result.exit_code == 0
    assert last_line(result) == WALLET.address


def test_demo_runs():
    result = CliRunner().invoke(main, ["demo"])
    assert result.exit_code == 0, result.output
    assert "Demo complete" in result.output
    assert "exceeds remaining budget" in result.output
    assert "already executed" in result.output
