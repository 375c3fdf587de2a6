"""Tests for tug.definitions - resource definition files."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from tug.config import ConfigError
from tug.definitions import ResourceDefinition, load_definition
from tug.manifest import ResourceKind


class TestResourceDefinition:
    """Tests for ResourceDefinition.from_dict."""

    def test_namespaced_kind_uses_metadata_namespace(self):
        d = ResourceDefinition.from_dict(
            {'kind': 'ConfigMap', 'metadata': {'name': 'cfg', 'namespace': 'ops'}},
            default_namespace='shop',
        )
        assert d.kind is ResourceKind.CONFIG_MAP
        assert d.namespace == 'ops'
        assert d.display_name == 'ops/cfg'

    def test_namespaced_kind_falls_back_to_manifest_namespace(self):
        d = ResourceDefinition.from_dict(
            {'kind': 'Pod', 'metadata': {'name': 'p'}}, default_namespace='shop',
        )
        assert d.namespace == 'shop'
        assert d.body['metadata']['namespace'] == 'shop'

    def test_namespaced_kind_defaults_to_default(self):
        d = ResourceDefinition.from_dict({'kind': 'Service', 'metadata': {'name': 's'}})
        assert d.namespace == 'default'

    def test_cluster_scoped_kind_has_no_namespace(self):
        d = ResourceDefinition.from_dict(
            {'kind': 'Namespace', 'metadata': {'name': 'shop'}}, default_namespace='shop',
        )
        assert d.namespace is None
        assert 'namespace' not in d.body['metadata']
        assert d.display_name == 'shop'

    def test_body_is_copied(self):
        data = {'kind': 'Pod', 'metadata': {'name': 'p'}}
        ResourceDefinition.from_dict(data, default_namespace='shop')
        assert 'namespace' not in data['metadata']

    def test_missing_kind_raises(self):
        with pytest.raises(ConfigError, match='No kind defined'):
            ResourceDefinition.from_dict({'metadata': {'name': 'p'}})

    def test_unsupported_kind_raises(self):
        with pytest.raises(ConfigError, match='Unsupported deployment kind'):
            ResourceDefinition.from_dict({'kind': 'CronJob', 'metadata': {'name': 'p'}})

    def test_missing_metadata_raises(self):
        with pytest.raises(ConfigError, match='No metadata defined'):
            ResourceDefinition.from_dict({'kind': 'Pod'})

    def test_missing_name_raises(self):
        with pytest.raises(ConfigError, match='No metadata.name defined'):
            ResourceDefinition.from_dict({'kind': 'Pod', 'metadata': {}})


class TestLoadDefinition:
    """Tests for load_definition."""

    def test_loads_file(self, tmp_path, write_def):
        path = write_def(tmp_path, 'web.yaml', 'Deployment', 'web')
        d = load_definition(path, default_namespace='shop')
        assert d.kind is ResourceKind.DEPLOYMENT
        assert d.name == 'web'
        assert d.namespace == 'shop'
        assert d.source_path == path

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(ConfigError, match='Resource definition not found'):
            load_definition(tmp_path / 'missing.yaml')

    def test_invalid_yaml_raises(self, tmp_path):
        path = tmp_path / 'bad.yaml'
        path.write_text('kind: [Pod\n')
        with pytest.raises(ConfigError, match='Invalid YAML'):
            load_definition(path)

    def test_non_mapping_raises(self, tmp_path):
        path = tmp_path / 'list.yaml'
        path.write_text('- kind: Pod\n')
        with pytest.raises(ConfigError, match='must be a YAML object'):
            load_definition(path)

    def test_error_names_the_file(self, tmp_path):
        path = tmp_path / 'nokind.yaml'
        path.write_text('metadata:\n  name: x\n')
        with pytest.raises(ConfigError) as exc_info:
            load_definition(path)
        assert str(path) in str(exc_info.value)
