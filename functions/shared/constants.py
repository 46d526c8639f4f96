# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

ENHANCEMENT_TIMEOUT_SECONDS = 30
ENHANCE_TEMPERATURE = 0.7
ENHANCE_MAX_OUTPUT_TOKENS = 400

PUBLIC_CAPSULES_LIMIT = 50

SESSION_COOKIE = "memory-capsule-session"

# Reasoning-channel text some chat providers leak ahead of the answer.
REASONING_ARTIFACT_PREFIX = "analysisWe"

ENHANCE_FUNCTION_ID = "enhance-content"
