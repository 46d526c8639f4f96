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

ENHANCE_CONTENT_SYSTEM_PROMPT = (
    "You are enhancing text for a digital memory capsule platform. Transform "
    "user input into well-written, digital memories. Focus on experiences, "
    "feelings, photos, videos - NOT physical objects. Keep it personal, "
    "heartfelt, add humor where needed and under 50 words. Enhance grammar and "
    "while preserving the original meaning."
)
