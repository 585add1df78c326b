import pytest

from services.config_manager import CONFIG_DIR_ENV, ConfigManager

HOOK_PAYLOAD = """<reply>Here is your dynamic fee hook.</reply>
<hookCode>
contract DynamicFeeHook is BaseHook {
    function beforeSwap() external {}
}
</hookCode>
<name>Dynamic Fee Hook</name>
<description>Adjusts the pool fee before swap based on volatility. Complexity: medium</description>
<gasEstimate>45,000</gasEstimate>
<implementationDetails>
  <feature>
    <name>Volatility tracking</name>
    <description>Tracks recent price moves</description>
    <codeSnippet>uint256 vol;</codeSnippet>
  </feature>
  <feature>
    <name>Fee override</name>
    <description>Returns a fee override flag</description>
  </feature>
</implementationDetails>
<testCode>contract DynamicFeeHookTest {}</testCode>
<examples>
  <example>Deploy with a 0.3% base fee</example>
  <example>Attach to an ETH/USDC pool</example>
</examples>"""


@pytest.fixture
def hook_payload():
    return HOOK_PAYLOAD


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    monkeypatch.setenv(CONFIG_DIR_ENV, str(tmp_path))
    ConfigManager.reset_instance()
    yield tmp_path
    ConfigManager.reset_instance()
