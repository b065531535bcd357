"""
PowerShell request encoding and the automation scripts deckmap sends.

Every automation request is a script passed through ``-EncodedCommand``
(UTF-16LE, base64) so no quoting survives to the command line. Values are
embedded as single-quoted PowerShell literals.
"""

import base64
import logging
from typing import Sequence

from ..utils.errors import UnsupportedPlatformError
from .base import Platform

logger = logging.getLogger(__name__)

POWERSHELL = "powershell"
BASE_ARGS = ["-NoProfile", "-NonInteractive", "-ExecutionPolicy", "Bypass"]


def encode_script(script: str) -> str:
    return base64.b64encode(script.encode("utf-16-le")).decode("ascii")


def quote(value) -> str:
    """Embed a value as a single-quoted PowerShell literal."""
    return "'" + str(value if value is not None else "").replace("'", "''") + "'"


def run_script(
    platform: Platform,
    script: str,
    *,
    purpose: str,
    timeout: float,
    args: Sequence[str] = (),
    sta: bool = False,
) -> str:
    """
    Run a PowerShell script through the platform's execute capability.

    Args:
        platform: Platform to run on
        script: Script source
        purpose: Human-readable capability name used in error messages
        timeout: Seconds before the script is killed
        args: Extra script parameters (``-Name value`` pairs)
        sta: Run in a single-threaded apartment (needed for COM input APIs)

    Returns:
        Script standard output

    Raises:
        UnsupportedPlatformError: If the platform has no automation support
        AutomationError: If the script fails or times out
    """
    if not platform.supports_automation:
        raise UnsupportedPlatformError(f"{purpose} is only supported on Windows.")

    argv = list(BASE_ARGS)
    if sta:
        argv.append("-STA")
    argv.extend(["-EncodedCommand", encode_script(script)])
    argv.extend(args)
    logger.debug(f"Running PowerShell script for {purpose} (timeout {timeout:g}s)")
    return platform.execute(POWERSHELL, argv, timeout)


def send_keys_script(tokens: Sequence[str], delay_ms: int = 0) -> str:
    """SendKeys each token in order, pausing ``delay_ms`` after each."""
    token_list = ", ".join(quote(token) for token in tokens)
    return f"""
$ws = New-Object -ComObject WScript.Shell
$keys = @({token_list})
Start-Sleep -Milliseconds 80
foreach ($k in $keys) {{
  $ws.SendKeys($k)
  Start-Sleep -Milliseconds {int(delay_ms)}
}}
"""


def shortcut_target_script(link_path: str) -> str:
    return f"""
$wsh = New-Object -ComObject WScript.Shell
$sc = $wsh.CreateShortcut({quote(link_path)})
if ($sc.TargetPath) {{ $sc.TargetPath }}
"""


def extract_icon_script(executable_path: str) -> str:
    """Print the executable's associated icon as base64 PNG."""
    return f"""
Add-Type -AssemblyName System.Drawing
$path = {quote(executable_path)}
if (-not (Test-Path $path)) {{ exit 1 }}
$icon = [System.Drawing.Icon]::ExtractAssociatedIcon($path)
if ($null -eq $icon) {{ exit 1 }}
$bmp = $icon.ToBitmap()
$ms = New-Object System.IO.MemoryStream
$bmp.Save($ms, [System.Drawing.Imaging.ImageFormat]::Png)
[Convert]::ToBase64String($ms.ToArray())
$ms.Dispose()
$bmp.Dispose()
$icon.Dispose()
"""


# Walks the default render device's audio sessions and nudges every session
# whose process name matches the target (substring match in both directions).
VOLUME_ADJUST_SCRIPT = r"""
param(
  [Parameter(Mandatory = $true)][string]$Target,
  [Parameter(Mandatory = $true)][double]$Step
)
$ErrorActionPreference = 'Stop'
Add-Type -TypeDefinition @"
using System;
using System.Runtime.InteropServices;
public enum EDataFlow { eRender = 0, eCapture = 1, eAll = 2 }
public enum ERole { eConsole = 0, eMultimedia = 1, eCommunications = 2 }
[Guid("A95664D2-9614-4F35-A746-DE8DB63617E6"), InterfaceType(ComInterfaceType.InterfaceIsIUnknown)]
interface IMMDeviceEnumerator {
  int NotImpl1();
  int GetDefaultAudioEndpoint(EDataFlow dataFlow, ERole role, out IMMDevice ppDevice);
}
[Guid("D666063F-1587-4E43-81F1-B948E807363F"), InterfaceType(ComInterfaceType.InterfaceIsIUnknown)]
interface IMMDevice {
  int Activate(ref Guid iid, int dwClsCtx, IntPtr pActivationParams, out object ppInterface);
}
[Guid("77AA99A0-1BD6-484F-8BC7-2C654C9A9B6F"), InterfaceType(ComInterfaceType.InterfaceIsIUnknown)]
interface IAudioSessionManager2 {
  int NotImpl1();
  int NotImpl2();
  int GetSessionEnumerator(out IAudioSessionEnumerator SessionEnum);
}
[Guid("E2F5BB11-0570-40CA-ACDD-3AA01277DEE8"), InterfaceType(ComInterfaceType.InterfaceIsIUnknown)]
interface IAudioSessionEnumerator {
  int GetCount(out int SessionCount);
  int GetSession(int SessionCount, out IAudioSessionControl2 Session);
}
[Guid("BFB7FF88-7239-4FC9-8FA2-07C950BE9C6D"), InterfaceType(ComInterfaceType.InterfaceIsIUnknown)]
interface IAudioSessionControl2 {
  int NotImpl0();
  int NotImpl1();
  int GetDisplayName([MarshalAs(UnmanagedType.LPWStr)] out string pRetVal);
  int SetDisplayName([MarshalAs(UnmanagedType.LPWStr)] string Value, Guid EventContext);
  int GetIconPath([MarshalAs(UnmanagedType.LPWStr)] out string pRetVal);
  int SetIconPath([MarshalAs(UnmanagedType.LPWStr)] string Value, Guid EventContext);
  int GetGroupingParam(out Guid pRetVal);
  int SetGroupingParam(Guid Override, Guid EventContext);
  int NotImpl2();
  int NotImpl3();
  int GetSessionIdentifier([MarshalAs(UnmanagedType.LPWStr)] out string pRetVal);
  int GetSessionInstanceIdentifier([MarshalAs(UnmanagedType.LPWStr)] out string pRetVal);
  int GetProcessId(out uint pRetVal);
  int IsSystemSoundsSession();
  int SetDuckingPreference(bool optOut);
}
[Guid("87CE5498-68D6-44E5-9215-6DA47EF883D8"), InterfaceType(ComInterfaceType.InterfaceIsIUnknown)]
interface ISimpleAudioVolume {
  int SetMasterVolume(float fLevel, ref Guid EventContext);
  int GetMasterVolume(out float pfLevel);
  int SetMute(bool bMute, ref Guid EventContext);
  int GetMute(out bool pbMute);
}
[ComImport, Guid("BCDE0395-E52F-467C-8E3D-C4579291692E")]
class MMDeviceEnumeratorComObject {
}
"@
$targetToken = $Target.Trim().Trim('"').ToLower()
if ([string]::IsNullOrWhiteSpace($targetToken)) { throw "Empty target" }
$step = [Math]::Max(-1.0, [Math]::Min(1.0, $Step))
$enumerator = [IMMDeviceEnumerator](New-Object MMDeviceEnumeratorComObject)
$device = $null
[void]$enumerator.GetDefaultAudioEndpoint([EDataFlow]::eRender, [ERole]::eMultimedia, [ref]$device)
$iid = [Guid]::Parse("77AA99A0-1BD6-484F-8BC7-2C654C9A9B6F")
$managerObj = $null
[void]$device.Activate([ref]$iid, 23, [IntPtr]::Zero, [ref]$managerObj)
$manager = [IAudioSessionManager2]$managerObj
$sessions = $null
[void]$manager.GetSessionEnumerator([ref]$sessions)
$count = 0
[void]$sessions.GetCount([ref]$count)
$changed = 0
$lastPercent = -1
for ($i = 0; $i -lt $count; $i++) {
  $control = $null
  [void]$sessions.GetSession($i, [ref]$control)
  if ($null -eq $control) { continue }
  $procId = 0
  [void]$control.GetProcessId([ref]$procId)
  if ($procId -le 0) { continue }
  try {
    $procName = [System.Diagnostics.Process]::GetProcessById([int]$procId).ProcessName.ToLower()
  } catch {
    continue
  }
  if ($procName -ne $targetToken -and -not $procName.Contains($targetToken) -and -not $targetToken.Contains($procName)) {
    continue
  }
  $volume = [ISimpleAudioVolume]$control
  $current = 0.0
  [void]$volume.GetMasterVolume([ref]$current)
  $next = [Math]::Max(0.0, [Math]::Min(1.0, $current + $step))
  $ctx = [Guid]::Empty
  [void]$volume.SetMasterVolume([float]$next, [ref]$ctx)
  $changed += 1
  $lastPercent = [int][Math]::Round($next * 100.0)
}
if ($changed -eq 0) {
  [Console]::Out.WriteLine('{"ok":false,"reason":"Application not found or not playing audio."}')
} else {
  [Console]::Out.WriteLine('{"ok":true,"sessions":' + $changed + ',"volume":' + $lastPercent + '}')
}
"""


# Lists installed applications from the uninstall registry keys and the
# start menu, dropping system components, installers and updaters.
APP_DISCOVERY_SCRIPT = r"""
$ErrorActionPreference = 'SilentlyContinue'
$appsByName = @{}
function Normalize-Cmd([string]$cmd) {
  if ([string]::IsNullOrWhiteSpace($cmd)) { return '' }
  $x = $cmd.Trim()
  if ($x.Contains(',')) { $x = $x.Split(',')[0] }
  return $x.Trim('"').Trim()
}
function Is-SystemApp([string]$name, [string]$publisher, [string]$cmd, [string]$source) {
  $n = ($name + ' ' + $publisher).ToLower()
  if ($source -eq 'registry' -and $n -match 'microsoft') { return $true }
  if ($n -match 'windows defender|windows update|edgewebview|webview2|xbox|onenote|onedrive|cortana|runtime|redistributable') { return $true }
  if ($name -match 'Windows Tools|Administrative Tools|Startup') { return $true }
  if (($cmd.ToLower() -notmatch '\.lnk$') -and $cmd.ToLower().StartsWith($env:WINDIR.ToLower())) { return $true }
  return $false
}
function Is-UserApp([string]$name, [string]$cmd) {
  $n = $name.ToLower()
  $c = $cmd.ToLower().Trim('"')
  $file = [System.IO.Path]::GetFileName($c).ToLower()
  if ($n -match 'uninstall|updater|update|helper|service|crash|report|diagnostic|setup|installer') { return $false }
  if ($file -match '^unins[0-9]*\.exe$|uninstall|setup|installer|updater|update|helper|service|crash') { return $false }
  if ($c -match '\\uninstall(ers)?\\|\\installer\\|\\setup\\') { return $false }
  return $true
}
function Add-App([string]$name, [string]$cmd, [string]$publisher, [string]$source) {
  if ([string]::IsNullOrWhiteSpace($name)) { return }
  $norm = Normalize-Cmd $cmd
  if ([string]::IsNullOrWhiteSpace($norm)) { return }
  if ($norm -notmatch '\.(exe|lnk)$') { return }
  if (Is-SystemApp $name $publisher $norm $source) { return }
  if (-not (Is-UserApp $name $norm)) { return }
  if ($norm.Contains(' ')) { $norm = '"' + $norm + '"' }
  $key = $name.Trim().ToLower()
  $priority = if ($norm.ToLower().TrimEnd('"').EndsWith('.lnk')) { 2 } else { 1 }
  $candidate = [PSCustomObject]@{ name = $name.Trim(); command = $norm; priority = $priority }
  if (-not $appsByName.ContainsKey($key) -or $candidate.priority -gt $appsByName[$key].priority) {
    $appsByName[$key] = $candidate
  }
}
$regPaths = @(
  'HKLM:\SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall\*',
  'HKLM:\SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Uninstall\*',
  'HKCU:\SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall\*'
)
foreach ($path in $regPaths) {
  Get-ItemProperty $path | ForEach-Object {
    $cmd = Normalize-Cmd $_.DisplayIcon
    if ([string]::IsNullOrWhiteSpace($cmd)) {
      $u = Normalize-Cmd $_.UninstallString
      if ($u -match '\.exe$') { $cmd = $u }
    }
    Add-App $_.DisplayName $cmd $_.Publisher 'registry'
  }
}
$shortcutRoots = @(
  "$env:ProgramData\Microsoft\Windows\Start Menu\Programs",
  "$env:APPDATA\Microsoft\Windows\Start Menu\Programs"
)
foreach ($root in $shortcutRoots) {
  if (-not (Test-Path $root)) { continue }
  Get-ChildItem -Path $root -Recurse -Filter *.lnk | ForEach-Object {
    Add-App ([System.IO.Path]::GetFileNameWithoutExtension($_.Name)) $_.FullName '' 'startmenu'
  }
}
$appsByName.Values | Sort-Object name | Select-Object name, command | ConvertTo-Json -Compress
"""
