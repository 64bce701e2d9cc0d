"""BerryMX flat-file resource store."""

import os
import json
import uuid
import shutil
import asyncio
import logging
from typing import Any, Dict, List, Union

import aiofiles
import aiofiles.os

from .exceptions import ResourceNotFoundError, StorageIOError
from .resources import RESOURCES, ResourceSpec, get_resource
from berrymx.monitoring.metrics import metrics_collector

logger = logging.getLogger(__name__)

ResourceValue = Union[List[Dict[str, Any]], Dict[str, Any]]


class ResourceStore:
    """每个资源一个 JSON 文件的存储"""

    def __init__(self, data_dir: str):
        self.data_dir = os.path.abspath(data_dir)
        os.makedirs(self.data_dir, exist_ok=True)
        self._locks: Dict[str, asyncio.Lock] = {}

    def _spec(self, resource: Union[str, ResourceSpec]) -> ResourceSpec:
        if isinstance(resource, ResourceSpec):
            return resource
        spec = get_resource(resource)
        if spec is None:
            raise ResourceNotFoundError("Unknown resource", resource=resource)
        return spec

    def path_for(self, resource: Union[str, ResourceSpec]) -> str:
        return os.path.join(self.data_dir, self._spec(resource).file)

    def lock(self, resource: Union[str, ResourceSpec]) -> asyncio.Lock:
        """Lock guarding read-modify-write cycles on one resource file."""
        name = self._spec(resource).name
        if name not in self._locks:
            self._locks[name] = asyncio.Lock()
        return self._locks[name]

    async def load(self, resource: Union[str, ResourceSpec]) -> ResourceValue:
        """读取资源；文件缺失或结构不符时返回空默认值"""
        spec = self._spec(resource)
        file_path = self.path_for(spec)
        try:
            async with aiofiles.open(file_path, "r", encoding="utf-8") as f:
                raw = await f.read()
        except FileNotFoundError:
            metrics_collector.track_storage_operation("load", True)
            return spec.empty
        except OSError as e:
            logger.error(f"Error reading {file_path}: {str(e)}")
            metrics_collector.track_storage_operation("load", False)
            raise StorageIOError(file_path, "load", e)

        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.error(f"Invalid JSON in {file_path}: {str(e)}")
            metrics_collector.track_storage_operation("load", False)
            raise StorageIOError(file_path, "load", e)

        metrics_collector.track_storage_operation("load", True)
        if spec.is_collection:
            if isinstance(data, list):
                return data
        elif isinstance(data, dict):
            return data
        logger.warning(f"Unexpected JSON shape in {file_path}, using empty {spec.mode.value}")
        return spec.empty

    async def save(self, resource: Union[str, ResourceSpec], value: ResourceValue) -> None:
        """写入临时文件后原子替换"""
        file_path = self.path_for(resource)
        temp_path = f"{file_path}.{uuid.uuid4().hex}.tmp"
        content = json.dumps(value, indent=2, ensure_ascii=False)
        try:
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(content)
                await f.flush()
            # 原子性重命名
            await aiofiles.os.replace(temp_path, file_path)
        except OSError as e:
            logger.error(f"Error writing {file_path}: {str(e)}")
            metrics_collector.track_storage_operation("save", False)
            try:
                await aiofiles.os.remove(temp_path)
            except FileNotFoundError:
                pass
            except OSError as cleanup_error:
                logger.warning(f"Could not remove {temp_path}: {str(cleanup_error)}")
            raise StorageIOError(file_path, "save", e)
        metrics_collector.track_storage_operation("save", True)

    def seed_from(self, source_dir: str) -> List[str]:
        """Copy bundled resource files that are newer than the data copy."""
        copied = []
        if not source_dir or not os.path.isdir(source_dir):
            return copied
        for spec in RESOURCES.values():
            source = os.path.join(source_dir, spec.file)
            if not os.path.exists(source):
                continue
            target = self.path_for(spec)
            try:
                if not os.path.exists(target) or os.path.getmtime(source) > os.path.getmtime(target):
                    shutil.copyfile(source, target)
                    copied.append(spec.file)
            except OSError as e:
                logger.warning(f"Could not sync {spec.file}: {str(e)}")
        if copied:
            logger.info(f"Seeded {', '.join(copied)} from {source_dir}")
        return copied
