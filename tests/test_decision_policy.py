from __future__ import annotations

import pytest

torch = pytest.importorskip("torch")
nn = pytest.importorskip("torch.nn")

from model.graph import InferenceModel
from policies import ActionSpec, DecisionPolicy, InferenceMode
from runner.registry import RunnerRegistry
from storage.decision_queue import Observation
from utils.device import InferenceDevice
from utils.errors import ConfigurationError, ContractViolationError


class _TaggedGraph(nn.Module):
    """Continuous action = [tag, obs], value = tag + obs."""

    def __init__(self, tag: float) -> None:
        super().__init__()
        self.tag = tag
        self.calls = 0

    def forward(self, **inputs):
        self.calls += 1
        obs = inputs["obs_0"]
        tag = torch.full((obs.shape[0], 1), self.tag)
        return {
            "action": torch.cat([tag, obs], dim=1),
            "value_estimate": tag + obs,
        }


class _BranchLogitsGraph(nn.Module):
    """Logits for branches (3, 2) peaking at indices (2, 0)."""

    def forward(self, **inputs):
        batch = inputs["obs_0"].shape[0]
        logits = torch.tensor([0.0, 0.0, 50.0, 50.0, 0.0])
        return {"action": logits.repeat(batch, 1)}


class _CountingRegistry(RunnerRegistry):
    def __init__(self) -> None:
        super().__init__()
        self.calls = 0

    def get_or_create(self, model, device, action_spec):
        self.calls += 1
        return super().get_or_create(model, device, action_spec)


def _model(tag: float, name: str) -> InferenceModel:
    return InferenceModel(_TaggedGraph(tag), output_names=("action", "value_estimate"), name=name)


@pytest.fixture
def models():
    return {
        "policy": _model(1.0, "policy"),
        "value": _model(2.0, "value"),
        "combined": _model(3.0, "combined"),
    }


def _policy(registry, models, with_value=True, with_combined=True) -> DecisionPolicy:
    return DecisionPolicy(
        registry,
        ActionSpec.make_continuous(2),
        models["policy"],
        model_value_estimate=models["value"] if with_value else None,
        model_policy_and_value_estimate=models["combined"] if with_combined else None,
    )


def test_hybrid_action_spec_is_rejected_before_any_runner_exists(models):
    registry = _CountingRegistry()
    hybrid = ActionSpec(num_continuous_actions=2, branch_sizes=(3,))

    with pytest.raises(ConfigurationError, match="Hybrid"):
        DecisionPolicy(registry, hybrid, models["policy"])

    assert registry.calls == 0
    assert len(registry) == 0


def test_policies_with_the_same_models_share_runners(models):
    registry = RunnerRegistry()
    a = _policy(registry, models)
    b = _policy(registry, models)

    assert len(registry) == 3
    for mode in InferenceMode:
        assert a.runner(mode) is b.runner(mode)


def test_continuous_decision_carries_the_value_estimate(models):
    policy = _policy(RunnerRegistry(), models)
    policy.request(Observation(episode_id=11), [torch.tensor([0.5])])

    result = policy.decide()

    assert torch.allclose(result.continuous_actions, torch.tensor([1.0, 0.5]))
    assert result.discrete_actions.numel() == 0
    assert result.value_estimate == pytest.approx(1.5)


def test_mode_is_single_use(models):
    registry = RunnerRegistry()
    policy = _policy(registry, models)
    obs = Observation(episode_id=1)

    policy.request(obs, [torch.tensor([0.0])], mode=InferenceMode.VALUE_ESTIMATE)
    first = policy.decide()
    assert first.continuous_actions[0].item() == pytest.approx(2.0)

    policy_runner = policy.runner(InferenceMode.POLICY)
    policy_runner.enqueue(obs, [torch.tensor([0.0])])
    second = policy.decide()

    assert second.continuous_actions[0].item() == pytest.approx(1.0)
    assert policy_runner.pending == 0


def test_request_without_mode_reuses_last_mode_once(models):
    policy = _policy(RunnerRegistry(), models)
    sensors = [torch.tensor([0.0])]

    policy.request(Observation(episode_id=1), sensors, mode=InferenceMode.COMBINED)
    policy.decide()
    assert policy.mode == InferenceMode.COMBINED

    policy.request(Observation(episode_id=1), sensors)
    assert policy.mode == InferenceMode.POLICY
    assert policy.decide().continuous_actions[0].item() == pytest.approx(3.0)

    policy.request(Observation(episode_id=1), sensors)
    assert policy.decide().continuous_actions[0].item() == pytest.approx(1.0)


def test_integer_modes_are_accepted_and_invalid_modes_rejected(models):
    policy = _policy(RunnerRegistry(), models)
    sensors = [torch.tensor([0.0])]

    policy.request(Observation(episode_id=1), sensors, mode=2)
    assert policy.decide().continuous_actions[0].item() == pytest.approx(3.0)

    for bad in (3, -1, "value", True):
        with pytest.raises(ContractViolationError, match="Invalid inference mode"):
            policy.request(Observation(episode_id=1), sensors, mode=bad)
    assert all(policy.runner(m).pending == 0 for m in InferenceMode)


def test_unconfigured_runner_slot_is_a_configuration_error(models):
    policy = _policy(RunnerRegistry(), models, with_value=False, with_combined=False)
    sensors = [torch.tensor([0.0])]

    with pytest.raises(ConfigurationError, match="VALUE_ESTIMATE"):
        policy.request(Observation(episode_id=1), sensors, mode=InferenceMode.VALUE_ESTIMATE)
    with pytest.raises(ConfigurationError, match="COMBINED"):
        policy.request(Observation(episode_id=1), sensors, mode=InferenceMode.COMBINED)

    assert policy.mode == InferenceMode.POLICY
    assert policy.runner(InferenceMode.POLICY).pending == 0


def test_value_only_policy_needs_no_policy_model(models):
    registry = RunnerRegistry()
    policy = DecisionPolicy(registry, ActionSpec.make_continuous(2), model_value_estimate=models["value"])
    sensors = [torch.tensor([0.5])]

    assert len(registry) == 1
    assert policy.runner(InferenceMode.POLICY) is None

    policy.request(Observation(episode_id=1), sensors, mode=InferenceMode.VALUE_ESTIMATE)
    result = policy.decide()
    assert result.continuous_actions[0].item() == pytest.approx(2.0)
    assert result.value_estimate == pytest.approx(2.5)

    policy.request(Observation(episode_id=1), sensors)
    assert policy.decide().value_estimate == pytest.approx(2.5)
    with pytest.raises(ConfigurationError, match="POLICY"):
        policy.request(Observation(episode_id=1), sensors)


def test_one_decide_serves_every_agent_sharing_the_runner(models):
    registry = RunnerRegistry()
    agents = [_policy(registry, models) for _ in range(3)]
    for episode_id, agent in enumerate(agents):
        agent.request(Observation(episode_id=episode_id), [torch.tensor([float(episode_id)])])

    results = [agent.decide() for agent in agents]

    assert models["policy"].module.calls == 1
    for episode_id, result in enumerate(results):
        assert result.continuous_actions[1].item() == pytest.approx(float(episode_id))


def test_decisions_are_owned_values(models):
    policy = _policy(RunnerRegistry(), models)
    policy.request(Observation(episode_id=1), [torch.tensor([0.25])])
    first = policy.decide()
    policy.request(Observation(episode_id=1), [torch.tensor([0.75])])
    second = policy.decide()

    assert first is not second
    assert first.continuous_actions[1].item() == pytest.approx(0.25)
    assert second.continuous_actions[1].item() == pytest.approx(0.75)


def test_completed_episode_gets_an_empty_decision(models):
    policy = _policy(RunnerRegistry(), models)
    policy.request(Observation(episode_id=4, done=True), [torch.tensor([1.0])])

    result = policy.decide()

    assert result.is_empty
    assert result.value_estimate == 0.0


def test_decide_before_any_request_returns_empty(models):
    policy = _policy(RunnerRegistry(), models)
    assert policy.decide().is_empty


def test_discrete_decision_returns_branch_indices_without_value():
    registry = RunnerRegistry()
    model = InferenceModel(_BranchLogitsGraph(), output_names=("action",), name="branches")
    policy = DecisionPolicy(registry, ActionSpec.make_discrete(3, 2), model, device=InferenceDevice.CPU)

    policy.request(Observation(episode_id=1), [torch.zeros(2)])
    result = policy.decide()

    assert result.discrete_actions.dtype == torch.long
    assert result.discrete_actions.tolist() == [2, 0]
    assert result.continuous_actions.numel() == 0
    assert result.value_estimate == 0.0
