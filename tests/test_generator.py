# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The k8s-rewrite contributors
"""Tests for the rendering pipeline."""

import os
from pathlib import Path

import pytest
import yaml

from k8s_rewrite.config import RewriteConfig
from k8s_rewrite.generator import (
    default_templates_dir,
    find_manifests,
    generate,
    output_dir_for,
    prepare_output_dir,
    rewrite_manifests,
    validate_manifests,
)
from k8s_rewrite.rewrite import find_placeholders

DEPLOYMENT_TEMPLATE = """\
apiVersion: apps/v1
kind: Deployment
metadata:
  name: proxy
  namespace: __NAMESPACE__
spec:
  replicas: __NUM_PROXIES__
  template:
    spec:
      __MAYBE_PULL_SECRETS__
      containers:
      - name: proxy
        image: "__IMAGE_PREFIX__proxy__IMAGE_SUFFIX__"
"""

SERVICE_TEMPLATE = """\
apiVersion: v1
kind: Service
metadata:
  name: proxy
  namespace: __NAMESPACE__
spec:
  externalIPs: [__EXTERNAL_IPS__]
"""


def _make_config(image_pull_secret: str | None = None) -> RewriteConfig:
    return RewriteConfig(
        external_ips='"10.0.0.1", "10.0.0.2"',
        image_prefix="reg.example.com/",
        image_suffix=":v1",
        namespace="rw",
        db_url="mysql://db/rw",
        num_proxies="2",
        num_runtimes="3",
        num_fetchd="1",
        cpu_request_per_runtime="500m",
        image_pull_secret=image_pull_secret,
    )


def _make_templates(tmp_path: Path) -> Path:
    templates = tmp_path / "templates"
    (templates / "net").mkdir(parents=True)
    (templates / "deployment.yaml").write_text(DEPLOYMENT_TEMPLATE)
    (templates / "net" / "service.yaml").write_text(SERVICE_TEMPLATE)
    (templates / "README.md").write_text("namespace: __NAMESPACE__\n")
    return templates


def _read_yaml(path: Path) -> dict:
    return yaml.safe_load(path.read_text())


# ---------------------------------------------------------------------------
# output_dir_for
# ---------------------------------------------------------------------------


def test_output_dir_for_suffix(tmp_path: Path) -> None:
    assert output_dir_for("staging", tmp_path) == tmp_path / "k8s.staging"


def test_output_dir_for_empty_suffix(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="suffix required"):
        output_dir_for("", tmp_path)


# ---------------------------------------------------------------------------
# prepare_output_dir
# ---------------------------------------------------------------------------


def test_prepare_output_dir_copies_tree(tmp_path: Path) -> None:
    templates = _make_templates(tmp_path)
    output = tmp_path / "k8s.test"

    prepare_output_dir(templates, output)

    assert (output / "deployment.yaml").read_text() == DEPLOYMENT_TEMPLATE
    assert (output / "net" / "service.yaml").exists()
    assert (output / "README.md").exists()


def test_prepare_output_dir_replaces_previous_output(tmp_path: Path) -> None:
    templates = _make_templates(tmp_path)
    output = tmp_path / "k8s.test"
    output.mkdir()
    (output / "stale.yaml").write_text("kind: ConfigMap\n")

    prepare_output_dir(templates, output)

    assert not (output / "stale.yaml").exists()
    assert (output / "deployment.yaml").exists()


def test_prepare_output_dir_missing_templates(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError, match="Templates directory not found"):
        prepare_output_dir(tmp_path / "missing", tmp_path / "k8s.test")


def test_find_manifests_recursive_and_sorted(tmp_path: Path) -> None:
    templates = _make_templates(tmp_path)
    assert find_manifests(templates) == [
        templates / "deployment.yaml",
        templates / "net" / "service.yaml",
    ]


# ---------------------------------------------------------------------------
# rewrite_manifests
# ---------------------------------------------------------------------------


def test_rewrite_manifests_substitutes_values(tmp_path: Path) -> None:
    templates = _make_templates(tmp_path)
    output = tmp_path / "k8s.test"
    prepare_output_dir(templates, output)

    rewrite_manifests(output, _make_config())

    deployment = _read_yaml(output / "deployment.yaml")
    assert deployment["metadata"]["namespace"] == "rw"
    assert deployment["spec"]["replicas"] == 2
    container = deployment["spec"]["template"]["spec"]["containers"][0]
    assert container["image"] == "reg.example.com/proxy:v1"

    service = _read_yaml(output / "net" / "service.yaml")
    assert service["spec"]["externalIPs"] == ["10.0.0.1", "10.0.0.2"]


def test_rewrite_manifests_leaves_non_yaml_files(tmp_path: Path) -> None:
    templates = _make_templates(tmp_path)
    output = tmp_path / "k8s.test"
    prepare_output_dir(templates, output)

    rewrite_manifests(output, _make_config())

    assert (output / "README.md").read_text() == "namespace: __NAMESPACE__\n"


def test_rewrite_manifests_without_pull_secret(tmp_path: Path) -> None:
    templates = _make_templates(tmp_path)
    output = tmp_path / "k8s.test"
    prepare_output_dir(templates, output)

    rewrite_manifests(output, _make_config())

    text = (output / "deployment.yaml").read_text()
    assert "imagePullSecrets" not in text
    assert "imagePullSecrets" not in _read_yaml(output / "deployment.yaml")["spec"]["template"]["spec"]


def test_rewrite_manifests_with_pull_secret(tmp_path: Path) -> None:
    templates = _make_templates(tmp_path)
    output = tmp_path / "k8s.test"
    prepare_output_dir(templates, output)

    rewrite_manifests(output, _make_config(image_pull_secret="regcred"))

    text = (output / "deployment.yaml").read_text()
    assert text.count("imagePullSecrets") == 1
    pod_spec = _read_yaml(output / "deployment.yaml")["spec"]["template"]["spec"]
    assert pod_spec["imagePullSecrets"] == [{"name": "regcred"}]
    assert pod_spec["containers"][0]["name"] == "proxy"


def test_rewrite_manifests_warns_on_unknown_placeholder(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    templates = _make_templates(tmp_path)
    (templates / "extra.yaml").write_text("value: __SOMETHING_ELSE__\n")
    output = tmp_path / "k8s.test"
    prepare_output_dir(templates, output)

    rewrite_manifests(output, _make_config())

    assert "__SOMETHING_ELSE__" in caplog.text


def test_rewrite_manifests_strict_rejects_unknown_placeholder(tmp_path: Path) -> None:
    templates = _make_templates(tmp_path)
    (templates / "extra.yaml").write_text("value: __SOMETHING_ELSE__\n")
    output = tmp_path / "k8s.test"
    prepare_output_dir(templates, output)

    with pytest.raises(ValueError, match="Unresolved placeholders"):
        rewrite_manifests(output, _make_config(), strict=True)


# ---------------------------------------------------------------------------
# validate_manifests
# ---------------------------------------------------------------------------


def test_validate_manifests_accepts_valid_yaml(tmp_path: Path) -> None:
    path = tmp_path / "ok.yaml"
    path.write_text("a: 1\n---\nb: 2\n")
    validate_manifests([path])


def test_validate_manifests_rejects_invalid_yaml(tmp_path: Path) -> None:
    path = tmp_path / "broken.yaml"
    path.write_text("spec:\n  externalIPs: [10.0.0.1\n")

    with pytest.raises(ValueError, match="not valid YAML"):
        validate_manifests([path])


# ---------------------------------------------------------------------------
# generate
# ---------------------------------------------------------------------------


def test_generate_writes_manifests_and_apply_script(tmp_path: Path) -> None:
    templates = _make_templates(tmp_path)
    output = tmp_path / "k8s.test"

    result = generate(_make_config(), templates, output)

    assert result.output_dir == output
    assert len(result.manifests) == 2
    assert result.apply_script == output / "apply.sh"
    assert os.access(result.apply_script, os.X_OK)

    apply_lines = [
        line for line in result.apply_script.read_text().splitlines()
        if "apply -f" in line
    ]
    assert sorted(apply_lines) == [
        "kubectl apply -f ./deployment.yaml",
        "kubectl apply -f ./net/service.yaml",
    ]


def test_generate_rerun_is_idempotent(tmp_path: Path) -> None:
    templates = _make_templates(tmp_path)
    output = tmp_path / "k8s.test"

    generate(_make_config(), templates, output)
    (output / "leftover.yaml").write_text("kind: ConfigMap\n")
    generate(_make_config(), templates, output)

    assert not (output / "leftover.yaml").exists()
    assert "leftover" not in (output / "apply.sh").read_text()


def test_generate_invalid_result_raises(tmp_path: Path) -> None:
    templates = _make_templates(tmp_path)
    config = _make_config()
    config.external_ips = '"10.0.0.1'

    with pytest.raises(ValueError, match="not valid YAML"):
        generate(config, templates, tmp_path / "k8s.test")


def test_generate_without_validation(tmp_path: Path) -> None:
    templates = _make_templates(tmp_path)
    config = _make_config()
    config.external_ips = '"10.0.0.1'

    result = generate(config, templates, tmp_path / "k8s.test", validate=False)
    assert result.apply_script.exists()


def test_generate_bundled_templates(tmp_path: Path) -> None:
    """The bundled templates render without leftover placeholders."""
    output = tmp_path / "k8s.bundled"

    result = generate(
        _make_config(image_pull_secret="regcred"),
        default_templates_dir(),
        output,
        strict=True,
    )

    assert result.manifests
    for manifest in result.manifests:
        text = manifest.read_text()
        assert find_placeholders(text) == set()
        for doc in yaml.safe_load_all(text):
            if doc and doc["kind"] == "Deployment":
                pod_spec = doc["spec"]["template"]["spec"]
                assert pod_spec["imagePullSecrets"] == [{"name": "regcred"}]


def test_prepare_output_dir_replaces_regular_file(tmp_path: Path) -> None:
    templates = _make_templates(tmp_path)
    output = tmp_path / "k8s.test"
    output.write_text("not a directory\n")

    prepare_output_dir(templates, output)

    assert output.is_dir()
    assert (output / "deployment.yaml").exists()


def test_prepare_output_dir_replaces_symlink_without_touching_target(tmp_path: Path) -> None:
    templates = _make_templates(tmp_path)
    target = tmp_path / "elsewhere"
    target.mkdir()
    (target / "keep.yaml").write_text("kind: ConfigMap\n")
    output = tmp_path / "k8s.test"
    output.symlink_to(target, target_is_directory=True)

    prepare_output_dir(templates, output)

    assert not output.is_symlink()
    assert (output / "deployment.yaml").exists()
    assert (target / "keep.yaml").exists()


def test_prepare_output_dir_replaces_dangling_symlink(tmp_path: Path) -> None:
    templates = _make_templates(tmp_path)
    output = tmp_path / "k8s.test"
    output.symlink_to(tmp_path / "gone")

    prepare_output_dir(templates, output)

    assert output.is_dir() and not output.is_symlink()
